from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    EMAIL = "email"
    URL = "url"
    PHONE = "phone"
    PASSWORD = "password"
    NUMBER = "number"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    SELECT = "select"
    MULTISELECT = "multiselect"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    SWITCH = "switch"
    TOGGLE = "toggle"
    FILE = "file"
    RANGE = "range"
    COLOR = "color"
    RATING = "rating"
    SIGNATURE = "signature"
    CAPTCHA = "captcha"
    RICH_TEXT = "rich-text"


# Spellings found in older form definitions
FIELD_TYPE_ALIASES = {
    "tel": FieldType.PHONE,
    "datetime-local": FieldType.DATETIME,
    "richtext": FieldType.RICH_TEXT,
    "rich_text": FieldType.RICH_TEXT,
}

CHOICE_TYPES = {FieldType.SELECT, FieldType.MULTISELECT, FieldType.RADIO, FieldType.CHECKBOX}
MULTI_VALUE_TYPES = {FieldType.CHECKBOX, FieldType.MULTISELECT}
BOOLEAN_TYPES = {FieldType.SWITCH, FieldType.TOGGLE}
NUMERIC_TYPES = {FieldType.NUMBER, FieldType.RANGE, FieldType.RATING}
TEXT_TYPES = {
    FieldType.TEXT,
    FieldType.TEXTAREA,
    FieldType.EMAIL,
    FieldType.URL,
    FieldType.PHONE,
    FieldType.PASSWORD,
    FieldType.RICH_TEXT,
}


NO_DEPENDENCY = "none"


def parse_field_type(raw: Any) -> Optional[FieldType]:
    """Map a stored or imported type name onto the closed enumeration."""
    if isinstance(raw, FieldType):
        return raw
    if not isinstance(raw, str):
        return None
    key = raw.strip().lower()
    if key in FIELD_TYPE_ALIASES:
        return FIELD_TYPE_ALIASES[key]
    try:
        return FieldType(key)
    except ValueError:
        return None


def _coerce_field_type(v: Any) -> FieldType:
    parsed = parse_field_type(v)
    if parsed is None:
        raise ValueError(f"Unknown field type: {v!r}")
    return parsed


def _coerce_flag(v: Any) -> bool:
    if v is None:
        return False
    if isinstance(v, str):
        return v.strip().lower() in ("true", "1", "yes", "on")
    return bool(v)


class FieldOption(BaseModel):
    label: str
    value: str


def normalize_options(raw: Any) -> List[Dict[str, str]]:
    """
    Options were stored as plain strings by older editors and as
    {label, value} pairs by newer ones. Everything is converted to pairs here
    so the rest of the code only ever sees one shape.
    """
    if raw is None:
        return []
    if isinstance(raw, (str, dict)):
        raw = [raw]
    options = []
    for item in raw:
        if isinstance(item, FieldOption):
            options.append(item.model_dump())
        elif isinstance(item, dict):
            label = item.get("label")
            value = item.get("value")
            if label is None and value is None:
                continue
            label = str(label if label is not None else value)
            value = str(value if value is not None else label)
            options.append({"label": label, "value": value})
        elif item is not None and str(item) != "":
            options.append({"label": str(item), "value": str(item)})
    return options


class ValidationRules(BaseModel):
    model_config = ConfigDict(extra="ignore")

    min: Optional[float] = None
    max: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    integer: bool = False
    pattern: Optional[str] = None
    email: bool = False
    url: bool = False
    min_date: Optional[str] = None
    max_date: Optional[str] = None
    allowed_extensions: List[str] = Field(default_factory=list)
    max_file_size: Optional[float] = None  # megabytes

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        # the editor sends "" for cleared inputs
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    @field_validator("integer", "email", "url", mode="before")
    @classmethod
    def flags(cls, v):
        return _coerce_flag(v)

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def split_extensions(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [str(ext).strip().lower().lstrip(".") for ext in v if str(ext).strip()]


class ConditionalLogic(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    depends_on: str = Field(
        default=NO_DEPENDENCY,
        validation_alias=AliasChoices("dependsOn", "depends_on"),
        serialization_alias="dependsOn",
    )
    # unknown conditions are kept and evaluate as "not met"
    condition: str = "equals"
    value: Any = None
    action: str = "show"
    enabled: bool = True

    @field_validator("depends_on", mode="before")
    @classmethod
    def default_dependency(cls, v):
        if v is None or str(v).strip() == "":
            return NO_DEPENDENCY
        return str(v)

    @field_validator("condition", "action", mode="before")
    @classmethod
    def lowercase(cls, v, info):
        if v is None or str(v).strip() == "":
            return "equals" if info.field_name == "condition" else "show"
        return str(v).strip().lower()

    @field_validator("enabled", mode="before")
    @classmethod
    def enabled_flag(cls, v):
        return True if v is None else _coerce_flag(v)

    @property
    def is_active(self) -> bool:
        return self.enabled and self.depends_on != NO_DEPENDENCY


class FieldDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    form_id: Optional[str] = None
    type: FieldType = FieldType.TEXT
    label: str = ""
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    required: bool = False
    options: List[FieldOption] = Field(default_factory=list)
    validation_rules: ValidationRules = Field(default_factory=ValidationRules)
    conditional_logic: Optional[ConditionalLogic] = None
    position: int = 0
    default_value: Any = None
    active: bool = True

    @field_validator("type", mode="before")
    @classmethod
    def known_type(cls, v):
        return _coerce_field_type(v)

    @field_validator("options", mode="before")
    @classmethod
    def canonical_options(cls, v):
        return normalize_options(v)

    @field_validator("position", mode="before")
    @classmethod
    def null_position(cls, v):
        return 0 if v is None else v

    @field_validator("validation_rules", mode="before")
    @classmethod
    def empty_rules(cls, v):
        return v or {}

    @field_validator("conditional_logic", mode="before")
    @classmethod
    def inactive_logic(cls, v):
        if not v:
            return None
        return v

    @field_validator("required", "active", mode="before")
    @classmethod
    def null_flags(cls, v, info):
        if v is None:
            return info.field_name == "active"
        return v

    @property
    def dependency(self) -> Optional[str]:
        """Id this field's visibility depends on, or None when unconditional."""
        logic = self.conditional_logic
        if logic is None or not logic.is_active:
            return None
        return logic.depends_on


# ---------- API payloads ----------


class FormIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: Optional[str] = None
    active: bool = True
    redirect_url: Optional[str] = Field(default=None, alias="redirectUrl")


class FormUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    description: Optional[str] = None
    active: Optional[bool] = None
    redirect_url: Optional[str] = Field(default=None, alias="redirectUrl")


class FieldCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: FieldType
    label: Optional[str] = None
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    required: bool = False
    options: Optional[List[FieldOption]] = None
    validation_rules: Optional[ValidationRules] = None
    conditional_logic: Optional[ConditionalLogic] = None
    default_value: Any = None

    @field_validator("type", mode="before")
    @classmethod
    def known_type(cls, v):
        return _coerce_field_type(v)

    @field_validator("options", mode="before")
    @classmethod
    def canonical_options(cls, v):
        return None if v is None else normalize_options(v)


class FieldUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Optional[FieldType] = None
    label: Optional[str] = None
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    required: Optional[bool] = None
    options: Optional[List[FieldOption]] = None
    validation_rules: Optional[ValidationRules] = None
    conditional_logic: Optional[ConditionalLogic] = None
    default_value: Any = None
    active: Optional[bool] = None

    @field_validator("type", mode="before")
    @classmethod
    def known_type(cls, v):
        return None if v is None else _coerce_field_type(v)

    @field_validator("options", mode="before")
    @classmethod
    def canonical_options(cls, v):
        return None if v is None else normalize_options(v)


class FieldsBulkIn(BaseModel):
    fields: List[Dict[str, Any]]


class ReorderIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_id: str = Field(alias="sourceId")
    dest_id: str = Field(alias="destId")


class SubmissionIn(BaseModel):
    values: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("values", "response_data"),
    )


class PreviewIn(BaseModel):
    fields: List[FieldDefinition]
    values: Dict[str, Any] = Field(default_factory=dict)


class ImportedFieldsIn(BaseModel):
    fields: List[Any] = Field(default_factory=list)


WidgetType = Literal["table", "bar_chart", "line_chart", "pie_chart"]
WidgetSize = Literal["small", "medium", "large"]
Aggregation = Literal["count", "sum", "avg", "min", "max"]
DateGrouping = Literal["day", "week", "month", "year"]


class WidgetConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    group_by: Optional[str] = Field(default=None, alias="groupBy")
    aggregation: Optional[Aggregation] = None
    use_created_at_for_x: bool = Field(default=False, alias="useCreatedAtForX")
    use_created_at_for_y: bool = Field(default=False, alias="useCreatedAtForY")
    date_grouping: DateGrouping = Field(default="day", alias="dateGrouping")
    y_field: Optional[str] = Field(default=None, alias="yField")
    columns: List[str] = Field(default_factory=list)


class DashboardIn(BaseModel):
    name: str
    description: Optional[str] = None
    form_id: str


class DashboardUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    form_id: Optional[str] = None


class WidgetIn(BaseModel):
    name: str
    type: WidgetType
    size: WidgetSize = "medium"
    config: WidgetConfig = Field(default_factory=WidgetConfig)


class WidgetUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[WidgetType] = None
    size: Optional[WidgetSize] = None
    config: Optional[WidgetConfig] = None

