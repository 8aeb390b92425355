"""
Declarative form components.

Each UI component kind declared by a node's `ui_config` is its own pydantic
model, tagged by `type`. Anything the builder does not recognise parses into
`UnsupportedComponent`, which keeps the raw declaration so the bound
parameter value is carried through untouched.

Code that needs per-kind behaviour subclasses `ComponentVisitor`; every
component dispatches to exactly one `visit_*` method via `accept`.
"""

import logging
from typing import Any, ClassVar, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

logger = logging.getLogger(__name__)


class UIOption(BaseModel):
    value: str
    label: str = ""
    disabled: bool = False

    def model_post_init(self, __context):
        if not self.label:
            self.label = self.value


def _coerce_options(value):
    if value is None:
        return []
    out = []
    for option in value:
        if isinstance(option, (str, int, float)):
            out.append({"value": str(option), "label": str(option)})
        else:
            out.append(option)
    return out


class BaseComponent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    name: str = ""
    label: str = ""
    description: Optional[str] = None
    required: bool = False
    default_value: Any = None
    placeholder: Optional[str] = None
    disabled: bool = False
    visible: bool = True
    validation: Dict[str, Any] = {}
    styling: Dict[str, Any] = {}

    # Display-only components (label, divider, button) bind no parameter
    binds_value: ClassVar[bool] = True

    @property
    def title(self) -> str:
        return self.label or self.name

    def accept(self, visitor: "ComponentVisitor", *args):
        raise NotImplementedError


class DynamicOptionsMixin(BaseModel):
    """Select-like components whose option list may be fetched at runtime."""

    options: List[UIOption] = []
    # Option family to fetch (e.g. "models"); None means static options only
    options_source: Optional[str] = None
    # Field whose current value keys the fetch (e.g. "service")
    depends_on: Optional[str] = None

    @field_validator("options", mode="before")
    @classmethod
    def normalize_options(cls, value):
        return _coerce_options(value)

    @property
    def is_dynamic(self) -> bool:
        return self.options_source is not None


class TextInput(BaseComponent):
    type: Literal["text_input"] = "text_input"
    max_length: Optional[int] = None
    min_length: Optional[int] = None
    pattern: Optional[str] = None

    def accept(self, visitor, *args):
        return visitor.visit_text_input(self, *args)


class TextArea(BaseComponent):
    type: Literal["textarea"] = "textarea"
    rows: int = 3
    max_length: Optional[int] = None
    min_length: Optional[int] = None

    def accept(self, visitor, *args):
        return visitor.visit_textarea(self, *args)


class Select(DynamicOptionsMixin, BaseComponent):
    type: Literal["select"] = "select"
    multiple: bool = False
    searchable: bool = False

    def accept(self, visitor, *args):
        return visitor.visit_select(self, *args)


class MultiSelect(DynamicOptionsMixin, BaseComponent):
    type: Literal["multi_select"] = "multi_select"
    max_selections: Optional[int] = None

    def accept(self, visitor, *args):
        return visitor.visit_multi_select(self, *args)


class Checkbox(BaseComponent):
    type: Literal["checkbox"] = "checkbox"
    checked_value: Any = True
    unchecked_value: Any = False

    def accept(self, visitor, *args):
        return visitor.visit_checkbox(self, *args)


class Radio(BaseComponent):
    type: Literal["radio"] = "radio"
    options: List[UIOption] = []
    orientation: str = "vertical"

    @field_validator("options", mode="before")
    @classmethod
    def normalize_options(cls, value):
        return _coerce_options(value)

    def accept(self, visitor, *args):
        return visitor.visit_radio(self, *args)


class NumberInput(BaseComponent):
    type: Literal["number_input"] = "number_input"
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    step: Optional[float] = None
    # 0 means the parameter is an integer
    precision: Optional[int] = None

    def accept(self, visitor, *args):
        return visitor.visit_number_input(self, *args)


class Slider(BaseComponent):
    type: Literal["slider"] = "slider"
    min_value: float = 0
    max_value: float = 100
    step: float = 1
    show_value: bool = False

    def accept(self, visitor, *args):
        return visitor.visit_slider(self, *args)


class ColorPicker(BaseComponent):
    type: Literal["color_picker"] = "color_picker"
    format: str = "hex"
    show_preset_colors: bool = False

    def accept(self, visitor, *args):
        return visitor.visit_color_picker(self, *args)


class FileUpload(BaseComponent):
    type: Literal["file_upload"] = "file_upload"
    accept_types: Optional[str] = None
    multiple: bool = False
    max_file_size: Optional[int] = None
    max_files: Optional[int] = None

    def accept(self, visitor, *args):
        return visitor.visit_file_upload(self, *args)


class DatePicker(BaseComponent):
    type: Literal["date_picker"] = "date_picker"
    min_date: Optional[str] = None
    max_date: Optional[str] = None

    def accept(self, visitor, *args):
        return visitor.visit_date_picker(self, *args)


class Toggle(BaseComponent):
    type: Literal["toggle"] = "toggle"
    on_value: Any = True
    off_value: Any = False

    def accept(self, visitor, *args):
        return visitor.visit_toggle(self, *args)


class Label(BaseComponent):
    type: Literal["label"] = "label"
    text: Optional[str] = None
    html: bool = False

    binds_value: ClassVar[bool] = False

    def accept(self, visitor, *args):
        return visitor.visit_label(self, *args)


class Divider(BaseComponent):
    type: Literal["divider"] = "divider"
    orientation: str = "horizontal"
    thickness: int = 1
    color: Optional[str] = None

    binds_value: ClassVar[bool] = False

    def accept(self, visitor, *args):
        return visitor.visit_divider(self, *args)


class Button(BaseComponent):
    type: Literal["button"] = "button"
    button_text: Optional[str] = None
    button_type: Optional[str] = None
    variant: Optional[str] = None
    size: Optional[str] = None
    icon: Optional[str] = None

    binds_value: ClassVar[bool] = False

    def accept(self, visitor, *args):
        return visitor.visit_button(self, *args)


class UnsupportedComponent(BaseComponent):
    """A component kind this builder cannot edit. Its value is preserved as-is."""

    reason: Optional[str] = None

    def accept(self, visitor, *args):
        return visitor.visit_unsupported(self, *args)


COMPONENT_TYPES: Dict[str, Type[BaseComponent]] = {
    "text_input": TextInput,
    "textarea": TextArea,
    "select": Select,
    "multi_select": MultiSelect,
    "checkbox": Checkbox,
    "radio": Radio,
    "number_input": NumberInput,
    "slider": Slider,
    "color_picker": ColorPicker,
    "file_upload": FileUpload,
    "date_picker": DatePicker,
    "toggle": Toggle,
    "label": Label,
    "divider": Divider,
    "button": Button,
}

# Older schemas carry no options marker; these component names have always
# been fetched from the backend.
LEGACY_OPTION_SOURCES = {
    "model": ("models", "service"),
    "collection_name": ("collections", None),
}


def _unsupported(raw: Dict[str, Any], reason: Optional[str] = None) -> UnsupportedComponent:
    data = {**raw, "type": str(raw.get("type") or ""), "reason": reason}
    try:
        return UnsupportedComponent.model_validate(data)
    except ValidationError:
        # Even the common fields are malformed; keep what we can address by name
        return UnsupportedComponent.model_construct(
            type=data["type"], name=str(raw.get("name") or ""), reason=reason
        )


def parse_component(raw: Dict[str, Any]) -> BaseComponent:
    raw = dict(raw)
    component_type = str(raw.get("type") or "")
    cls = COMPONENT_TYPES.get(component_type)
    if cls is None:
        return _unsupported(raw)

    # `accept` is a method on every component; the HTML attribute of the
    # same name is stored as `accept_types`.
    if cls is FileUpload and "accept" in raw:
        raw["accept_types"] = raw.pop("accept")

    if cls in (Select, MultiSelect) and not raw.get("options_source"):
        legacy = LEGACY_OPTION_SOURCES.get(raw.get("name"))
        if legacy:
            raw["options_source"], raw["depends_on"] = legacy

    try:
        return cls.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Component {raw.get('name')!r} ({component_type}) is malformed, editing disabled: {e}")
        return _unsupported(raw, reason=str(e))


class ComponentVisitor:
    """One case per component kind. Unhandled kinds fall through to `visit_default`."""

    def visit_default(self, component: BaseComponent, *args):
        raise NotImplementedError(f"{type(self).__name__} does not handle {component.type}")

    def visit_text_input(self, component: TextInput, *args):
        return self.visit_default(component, *args)

    def visit_textarea(self, component: TextArea, *args):
        return self.visit_default(component, *args)

    def visit_select(self, component: Select, *args):
        return self.visit_default(component, *args)

    def visit_multi_select(self, component: MultiSelect, *args):
        return self.visit_default(component, *args)

    def visit_checkbox(self, component: Checkbox, *args):
        return self.visit_default(component, *args)

    def visit_radio(self, component: Radio, *args):
        return self.visit_default(component, *args)

    def visit_number_input(self, component: NumberInput, *args):
        return self.visit_default(component, *args)

    def visit_slider(self, component: Slider, *args):
        return self.visit_default(component, *args)

    def visit_color_picker(self, component: ColorPicker, *args):
        return self.visit_default(component, *args)

    def visit_file_upload(self, component: FileUpload, *args):
        return self.visit_default(component, *args)

    def visit_date_picker(self, component: DatePicker, *args):
        return self.visit_default(component, *args)

    def visit_toggle(self, component: Toggle, *args):
        return self.visit_default(component, *args)

    def visit_label(self, component: Label, *args):
        return self.visit_default(component, *args)

    def visit_divider(self, component: Divider, *args):
        return self.visit_default(component, *args)

    def visit_button(self, component: Button, *args):
        return self.visit_default(component, *args)

    def visit_unsupported(self, component: UnsupportedComponent, *args):
        return self.visit_default(component, *args)
