import asyncio
import datetime
import logging
import re
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel

from ..schemas import NodeSchema, NodeUIConfig, UIGroup
from .components import (
    BaseComponent,
    ComponentVisitor,
    DynamicOptionsMixin,
    UIOption,
    parse_component,
)
from .options import OptionKey, OptionResolver, is_empty, should_reset

logger = logging.getLogger(__name__)


class FieldView(BaseModel):
    name: str
    kind: str
    label: str = ""
    description: Optional[str] = None
    required: bool = False
    disabled: bool = False
    value: Any = None
    placeholder: Optional[str] = None
    options: Optional[List[UIOption]] = None
    loading: bool = False
    unsupported: bool = False
    message: Optional[str] = None
    props: Dict[str, Any] = {}


class GroupView(BaseModel):
    name: str
    label: str = ""
    description: Optional[str] = None
    collapsible: bool = False
    collapsed: bool = False
    fields: List[FieldView] = []


# Parameter type -> generated component, for schemas without a ui_config
PARAMETER_COMPONENTS = {
    "string": {"type": "text_input"},
    "str": {"type": "text_input"},
    "text": {"type": "textarea"},
    "integer": {"type": "number_input", "precision": 0, "step": 1},
    "int": {"type": "number_input", "precision": 0, "step": 1},
    "float": {"type": "number_input", "step": 0.1},
    "number": {"type": "number_input", "step": 0.1},
    "boolean": {"type": "checkbox", "checked_value": True, "unchecked_value": False},
    "bool": {"type": "checkbox", "checked_value": True, "unchecked_value": False},
}


def default_ui_config(schema: NodeSchema) -> NodeUIConfig:
    components = []
    for param in schema.parameters:
        if param.options:
            base = {"type": "select", "options": list(param.options)}
        else:
            # An unknown parameter type becomes an unsupported component
            base = dict(PARAMETER_COMPONENTS.get(param.type, {"type": param.type}))
        components.append({
            **base,
            "name": param.name,
            "label": param.name,
            "description": param.description,
            "required": param.required,
            "default_value": param.default_value,
        })
    return NodeUIConfig(
        node_id=schema.node_id,
        node_name=schema.name,
        groups=[UIGroup(name="parameters", label="Parameters", components=components)],
    )


def _to_float(raw: Any) -> Optional[float]:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _to_bool(raw: Any) -> Optional[bool]:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.strip().lower() in ("true", "false"):
        return raw.strip().lower() == "true"
    return None


class ValueCoercer(ComponentVisitor):
    """Turns an editor's raw input into the parameter value stored for it."""

    def _text(self, component, raw):
        return "" if raw is None else str(raw)

    visit_text_input = _text
    visit_textarea = _text
    visit_radio = _text
    visit_color_picker = _text

    def visit_select(self, component, raw):
        if component.multiple:
            return self.visit_multi_select(component, raw)
        return self._text(component, raw)

    def visit_multi_select(self, component, raw):
        if raw is None or raw == "":
            return []
        if isinstance(raw, (list, tuple, set)):
            return [str(v) for v in raw]
        return [str(raw)]

    def visit_checkbox(self, component, raw):
        if not isinstance(raw, bool) and raw == component.checked_value:
            return component.checked_value
        return component.checked_value if _to_bool(raw) else component.unchecked_value

    def visit_toggle(self, component, raw):
        if not isinstance(raw, bool) and raw == component.on_value:
            return component.on_value
        return component.on_value if _to_bool(raw) else component.off_value

    def visit_number_input(self, component, raw):
        value = _to_float(raw)
        if value is None:
            value = 0.0
        if component.precision == 0:
            return int(round(value))
        if component.precision:
            return round(value, component.precision)
        return value

    def visit_slider(self, component, raw):
        value = _to_float(raw)
        if value is None:
            value = component.min_value
        return min(max(value, component.min_value), component.max_value)

    def visit_file_upload(self, component, raw):
        if raw is None or raw == "":
            return []
        items = raw if isinstance(raw, (list, tuple)) else [raw]
        return [str(getattr(item, "filename", None) or item) for item in items]

    def visit_date_picker(self, component, raw):
        if isinstance(raw, (datetime.date, datetime.datetime)):
            return raw.isoformat()[:10]
        return self._text(component, raw)

    def visit_unsupported(self, component, raw):
        return raw

    def visit_default(self, component, raw):
        # label, divider, button
        return raw


class FieldRenderer(ComponentVisitor):
    """Builds the FieldView of one component against the form's current state."""

    def __init__(self, form: "SchemaForm"):
        self.form = form

    def _base(self, component: BaseComponent, **extra) -> FieldView:
        fields = dict(
            name=component.name,
            kind=component.type,
            label=component.title,
            description=component.description,
            required=component.required,
            disabled=component.disabled,
            value=self.form.display_value(component),
            placeholder=component.placeholder,
        )
        fields.update(extra)
        return FieldView(**fields)

    def _text(self, component, **props):
        return self._base(
            component,
            value=self.form.display_value(component) or "",
            placeholder=component.placeholder or f"Enter {component.title}",
            props={k: v for k, v in props.items() if v is not None},
        )

    def visit_text_input(self, component):
        return self._text(component, max_length=component.max_length,
                          min_length=component.min_length, pattern=component.pattern)

    def visit_textarea(self, component):
        return self._text(component, rows=component.rows, max_length=component.max_length,
                          min_length=component.min_length)

    def _choice(self, component, **props):
        options, loading = self.form.options_for(component)
        if loading:
            placeholder = f"Loading {component.options_source}..."
        elif component.depends_on and is_empty(self.form.values.get(component.depends_on)):
            placeholder = f"Select a {component.depends_on} first"
        else:
            placeholder = component.placeholder or f"Select {component.title}"
        return self._base(
            component,
            options=options,
            loading=loading,
            disabled=component.disabled or loading,
            placeholder=placeholder,
            props=props,
        )

    def visit_select(self, component):
        return self._choice(component, multiple=component.multiple, searchable=component.searchable)

    def visit_multi_select(self, component):
        view = self._choice(component, max_selections=component.max_selections)
        if not isinstance(view.value, list):
            view.value = [] if is_empty(view.value) else [view.value]
        return view

    def visit_radio(self, component):
        return self._base(component, options=component.options,
                          props={"orientation": component.orientation})

    def visit_checkbox(self, component):
        value = self.form.display_value(component)
        return self._base(component, props={"checked": value == component.checked_value})

    def visit_toggle(self, component):
        value = self.form.display_value(component)
        return self._base(component, props={"on": value == component.on_value})

    def visit_number_input(self, component):
        return self._base(
            component,
            placeholder=component.placeholder or f"Enter {component.title}",
            props={"min": component.min_value, "max": component.max_value,
                   "step": component.step, "precision": component.precision},
        )

    def visit_slider(self, component):
        value = self.form.display_value(component)
        if is_empty(value):
            value = component.min_value
        return self._base(
            component,
            value=value,
            props={"min": component.min_value, "max": component.max_value,
                   "step": component.step, "show_value": component.show_value},
        )

    def visit_color_picker(self, component):
        return self._base(component, value=self.form.display_value(component) or "#000000",
                          props={"format": component.format})

    def visit_file_upload(self, component):
        return self._base(component, props={"accept": component.accept_types,
                                             "multiple": component.multiple,
                                             "max_files": component.max_files})

    def visit_date_picker(self, component):
        return self._base(component, value=self.form.display_value(component) or "",
                          props={"min": component.min_date, "max": component.max_date})

    def visit_label(self, component):
        return self._base(component, value=None,
                          props={"text": component.text or component.label, "html": component.html})

    def visit_divider(self, component):
        return self._base(component, value=None,
                          props={"orientation": component.orientation,
                                 "thickness": component.thickness, "color": component.color})

    def visit_button(self, component):
        return self._base(component, value=None,
                          props={"text": component.button_text or component.label,
                                 "variant": component.variant, "size": component.size,
                                 "icon": component.icon})

    def visit_unsupported(self, component):
        return self._base(
            component,
            disabled=True,
            unsupported=True,
            message=f"Unsupported component type: {component.type or '(none)'}",
        )


class FieldValidator(ComponentVisitor):
    """Returns an error message for one component's value, or None."""

    def __init__(self, form: "SchemaForm"):
        self.form = form

    def _required(self, component, value):
        if component.required and is_empty(value):
            return f"{component.title} is required"
        return None

    def _text(self, component, value):
        error = self._required(component, value)
        if error or is_empty(value):
            return error
        text = str(value)
        if component.min_length is not None and len(text) < component.min_length:
            return f"{component.title} must be at least {component.min_length} characters"
        if component.max_length is not None and len(text) > component.max_length:
            return f"{component.title} must be at most {component.max_length} characters"
        pattern = getattr(component, "pattern", None)
        if pattern and not re.fullmatch(pattern, text):
            return f"{component.title} does not match the expected format"
        return None

    visit_text_input = _text
    visit_textarea = _text

    def _range(self, component, value):
        error = self._required(component, value)
        if error or is_empty(value):
            return error
        number = _to_float(value)
        if number is None:
            return f"{component.title} must be a number"
        if component.min_value is not None and number < component.min_value:
            return f"{component.title} must be >= {component.min_value:g}"
        if component.max_value is not None and number > component.max_value:
            return f"{component.title} must be <= {component.max_value:g}"
        return None

    visit_number_input = _range
    visit_slider = _range

    def _choice(self, component, value):
        error = self._required(component, value)
        if error or is_empty(value):
            return error
        options, loading = self.form.options_for(component)
        if loading or not options:
            # Cannot judge membership against an unloaded list
            return None
        allowed = {o.value for o in options}
        values = value if isinstance(value, list) else [value]
        bad = [str(v) for v in values if str(v) not in allowed]
        if bad:
            return f"{', '.join(bad)} is not a valid option for {component.title}"
        return None

    visit_select = _choice
    visit_radio = _choice

    def visit_multi_select(self, component, value):
        error = self._choice(component, value)
        if error:
            return error
        if component.max_selections and isinstance(value, list) and len(value) > component.max_selections:
            return f"Select at most {component.max_selections} for {component.title}"
        return None

    def visit_default(self, component, value):
        return self._required(component, value) if component.binds_value else None


class SchemaForm:
    """
    Editable form state for one node, driven by its declarative UI schema.

    `values` starts as a copy of the parameters the panel was opened with and
    always carries every key it was given, including ones no component edits.
    Cascading selects are reconciled after every edit and every option load
    using the controlling field's current value, so the outcome does not
    depend on the order in which responses arrive.
    """

    def __init__(self, schema: NodeSchema, parameters: Optional[Dict[str, Any]] = None,
                 resolver: Optional[OptionResolver] = None):
        self.schema = schema
        self.ui_config = schema.ui_config or default_ui_config(schema)
        self.resolver = resolver or OptionResolver()
        self.values: Dict[str, Any] = dict(parameters or {})
        self.groups: List[Tuple[UIGroup, List[BaseComponent]]] = [
            (group, [parse_component(raw) for raw in group.components])
            for group in self.ui_config.groups
        ]
        self.collapsed: Set[str] = {group.name for group in self.ui_config.groups if group.collapsed}

    # --- component lookup ---

    @property
    def components(self) -> List[BaseComponent]:
        return [c for _, components in self.groups for c in components]

    def component(self, name: str) -> Optional[BaseComponent]:
        for c in self.components:
            if c.name == name and c.binds_value:
                return c
        return None

    def display_value(self, component: BaseComponent) -> Any:
        if component.name in self.values:
            return self.values[component.name]
        return component.default_value

    # --- dynamic options ---

    def option_key(self, component: BaseComponent) -> Optional[OptionKey]:
        if not isinstance(component, DynamicOptionsMixin) or not component.is_dynamic:
            return None
        if component.depends_on is None:
            return (component.options_source, None)
        dependent = self.values.get(component.depends_on)
        if is_empty(dependent):
            return None
        return (component.options_source, str(dependent))

    def options_for(self, component: BaseComponent) -> Tuple[Optional[List[UIOption]], bool]:
        """(options, loading) for a select-like component; static options when not dynamic."""
        key = self.option_key(component)
        if key is None:
            return getattr(component, "options", None), False
        return self.resolver.get(key), self.resolver.is_loading(key)

    def pending_option_keys(self) -> List[OptionKey]:
        keys = []
        for component in self.components:
            key = self.option_key(component)
            if key and key not in keys and not self.resolver.is_loaded(key):
                keys.append(key)
        return keys

    async def load_options(self) -> List[str]:
        """Fetch whatever the current values need, then reconcile. Returns reset field names."""
        keys = self.pending_option_keys()
        if keys:
            await asyncio.gather(*(self.resolver.ensure(family, dependent) for family, dependent in keys))
        return self.reconcile()

    def reconcile(self) -> List[str]:
        updates = {}
        for component in self.components:
            if not isinstance(component, DynamicOptionsMixin) or not component.depends_on:
                continue
            key = self.option_key(component)
            if key is None:
                continue
            current = self.values.get(component.name)
            if should_reset(current, self.resolver.get(key), self.resolver.is_loading(key)):
                updates[component.name] = [] if isinstance(current, list) else ""
                logger.info(f"Resetting {component.name}: {current!r} is not offered for "
                            f"{component.depends_on}={key[1]!r}")
        if updates:
            self.values = {**self.values, **updates}
        return list(updates)

    # --- editing ---

    def set_value(self, name: str, raw: Any) -> Any:
        component = self.component(name)
        value = component.accept(ValueCoercer(), raw) if component else raw
        self.values = {**self.values, name: value}
        self.reconcile()
        return value

    def toggle_group(self, name: str):
        if name in self.collapsed:
            self.collapsed.discard(name)
        else:
            self.collapsed.add(name)

    def is_collapsed(self, name: str) -> bool:
        return name in self.collapsed

    # --- output ---

    def render(self) -> List[GroupView]:
        renderer = FieldRenderer(self)
        views = []
        for group, components in self.groups:
            hidden = group.collapsible and group.name in self.collapsed
            fields = [] if hidden else [c.accept(renderer) for c in components if c.visible]
            views.append(GroupView(
                name=group.name,
                label=group.label,
                description=group.description,
                collapsible=group.collapsible,
                collapsed=hidden,
                fields=fields,
            ))
        return views

    def validate(self) -> Dict[str, str]:
        validator = FieldValidator(self)
        errors = {}
        for component in self.components:
            if not component.binds_value or not component.visible:
                continue
            error = component.accept(validator, self.display_value(component))
            if error:
                errors[component.name] = error
        return errors
