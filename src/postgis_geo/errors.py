"""
Exception taxonomy for the feature service core.

Driver-specific errors never cross the core boundary: data sources wrap
them in QueryExecutionError. The HTTP layer maps the not-found errors to
404, InvalidQueryError to 400 and everything else to a generic 500.
"""


class FeatureServerError(Exception):
    """Base class for all feature service errors."""


class QueryExecutionError(FeatureServerError):
    """A data source failed to execute a built statement."""


class LayerNotFoundError(FeatureServerError, LookupError):
    """No layer is registered under the requested id."""

    def __init__(self, layer_id):
        super().__init__(f"Layer not found: {layer_id}")
        self.layer_id = layer_id


class ServiceNotFoundError(FeatureServerError, LookupError):
    """No FeatureServer is mounted under the requested service name."""

    def __init__(self, service_id):
        super().__init__(f"Service not found: {service_id}")
        self.service_id = service_id


class InvalidLayerRegistrationError(FeatureServerError):
    """A layer registration is misconfigured. Fatal at startup."""


class LayerClassInvalidError(InvalidLayerRegistrationError, TypeError):
    """The registered object does not satisfy the FeatureLayer contract."""


class InvalidQueryError(FeatureServerError, ValueError):
    """Client supplied query parameters that cannot be translated safely."""
