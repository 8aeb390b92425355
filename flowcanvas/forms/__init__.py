from .components import (
    COMPONENT_TYPES,
    BaseComponent,
    ComponentVisitor,
    UIOption,
    UnsupportedComponent,
    parse_component,
)
from .engine import FieldView, GroupView, SchemaForm, default_ui_config
from .options import OptionResolver, should_reset

__all__ = [
    "COMPONENT_TYPES",
    "BaseComponent",
    "ComponentVisitor",
    "FieldView",
    "GroupView",
    "OptionResolver",
    "SchemaForm",
    "UIOption",
    "UnsupportedComponent",
    "default_ui_config",
    "parse_component",
    "should_reset",
]
