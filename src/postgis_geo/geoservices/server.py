"""
FeatureServer: the registry of layers exposed under one service name.

Layers are registered explicitly at startup. Registering a second layer
with the same id replaces the first.
"""

import logging
from collections.abc import Mapping
from typing import Optional, Union

from postgis_geo.config import ServiceSettings
from postgis_geo.errors import LayerClassInvalidError, LayerNotFoundError
from postgis_geo.query.datasource import DataSource
from postgis_geo.query.models import LayerDefinition, QueryParams, RequestContext

from .layer import FeatureLayer, LayerCapability
from .metadata import build_service_metadata

logger = logging.getLogger(__name__)


class FeatureServer:
    """Registry and request dispatcher for a set of feature layers."""

    def __init__(self, data_source: DataSource, settings: Optional[ServiceSettings] = None):
        self.data_source = data_source
        self.settings = settings or ServiceSettings()
        self._layers: dict[int, FeatureLayer] = {}

    def register_layer(self, layer: Union[type, FeatureLayer]) -> "FeatureServer":
        """
        Register a FeatureLayer subclass or instance.

        Classes are instantiated with this server's data source.
        Raises LayerClassInvalidError when the contract is not met.
        """
        if isinstance(layer, type):
            if not issubclass(layer, FeatureLayer):
                raise LayerClassInvalidError(
                    f"{layer.__name__} is not a FeatureLayer subclass"
                )
            _check_contract(layer)
            layer = layer(self.data_source)
        elif isinstance(layer, FeatureLayer):
            _check_contract(layer)
        else:
            raise LayerClassInvalidError(
                f"Cannot register {type(layer).__name__} as a layer"
            )

        if layer.id in self._layers:
            logger.warning("Layer %d re-registered, replacing %s", layer.id, type(self._layers[layer.id]).__name__)
        self._layers[layer.id] = layer
        logger.info("Registered layer %d (%s) on table %s", layer.id, layer.name, layer.table_name)
        return self

    def get_layer(self, layer_id) -> FeatureLayer:
        try:
            return self._layers[int(layer_id)]
        except (KeyError, TypeError, ValueError):
            raise LayerNotFoundError(layer_id) from None

    @property
    def layers(self) -> list[FeatureLayer]:
        return list(self._layers.values())

    def get_service_info(self) -> dict:
        return build_service_metadata(self.layers, self.settings)

    def definition(self, layer_id, context: Optional[RequestContext] = None) -> dict:
        return self.get_layer(layer_id).get_definition(context)

    def query(
        self,
        layer_id,
        params: Union[QueryParams, Mapping, None] = None,
        context: Optional[RequestContext] = None,
    ) -> dict:
        return self.get_layer(layer_id).query(params, context)

    def count(
        self,
        layer_id,
        params: Union[QueryParams, Mapping, None] = None,
        context: Optional[RequestContext] = None,
    ) -> int:
        return self.get_layer(layer_id).count(params, context)


def _check_contract(layer):
    name = layer.__name__ if isinstance(layer, type) else type(layer).__name__
    if not isinstance(layer.table_name, str) or not layer.table_name:
        raise LayerClassInvalidError(f"{name} must define table_name")
    if not isinstance(layer.definition, LayerDefinition):
        raise LayerClassInvalidError(f"{name} must define a LayerDefinition")
    unknown = [c for c in layer.capabilities if not isinstance(c, LayerCapability)]
    if unknown:
        raise LayerClassInvalidError(f"{name} declares unknown capabilities: {unknown}")
