#!/usr/bin/env python3
"""
Entity schemas for the notification configuration.

Pydantic models for the three endpoint kinds (sendmail, gotify, smtp), the
matcher (routing rule) and the whole configuration document. Field names use
the hyphenated spelling on the wire (``from-address``, ``match-field``) and
snake_case in Python; both are accepted on input.

Optional fields are either present or absent (None). Absent fields are not
serialized, so a cleared field disappears from the persisted form.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Literal, Optional, Type
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from notification.calendar import CalendarSyntaxError, DailyDuration
from notification.errors import ValidationError

CONFIG_ID_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]+$")
USER_ID_RE = re.compile(r"^[^\s:/@]+@[A-Za-z][A-Za-z0-9.\-_]*$")
FIELD_MATCH_RE = re.compile(r"^(regex|exact):([^=]+)=(.*)$", re.DOTALL)

# Built-in target every user may see and use
BUILTIN_TARGET = "mail-to-root"


class Severity(str, Enum):
    """Notification severities, lowest to highest (``unknown`` last)."""
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FieldPredicate:
    """A parsed ``match-field`` entry: ``<mode>:<field>=<value>``."""
    mode: str  # "regex" or "exact"
    field: str
    value: str

    @classmethod
    def parse(cls, text: str) -> "FieldPredicate":
        if not isinstance(text, str):
            raise ValueError(f"invalid match-field {text!r}: expected a string")
        match = FIELD_MATCH_RE.match(text)
        if not match:
            raise ValueError(
                f"invalid match-field '{text}': must be in the form (regex|exact):<field>=<value>"
            )
        mode, field, value = match.groups()
        if mode == "regex":
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid regex in match-field '{text}': {e}")
        return cls(mode=mode, field=field, value=value)


def parse_severities(text: str) -> FrozenSet[Severity]:
    """Parse one ``match-severity`` entry (comma separated severities)."""
    if not isinstance(text, str):
        raise ValueError(f"invalid match-severity {text!r}: expected a string")
    severities = set()
    for part in text.split(","):
        part = part.strip().lower()
        if not part:
            raise ValueError(f"invalid match-severity '{text}': empty severity")
        try:
            severities.add(Severity(part))
        except ValueError:
            allowed = ", ".join(s.value for s in Severity)
            raise ValueError(f"invalid severity '{part}' (allowed: {allowed})")
    return frozenset(severities)


def _check_config_id(value: str, what: str = "name") -> str:
    if not isinstance(value, str) or not CONFIG_ID_RE.match(value):
        raise ValueError(f"invalid {what} '{value}': must match {CONFIG_ID_RE.pattern}")
    return value


def _as_list(value):
    # A single string is a one-element list; an empty list is an absent list
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValueError(f"expected a list, got {type(value).__name__}")
    return value or None


def _name_first(data: Dict[str, Any]) -> Dict[str, Any]:
    # Mixins put their fields ahead of the base class ones
    return {"name": data.pop("name"), **data}


def format_validation_error(exc: PydanticValidationError) -> str:
    """Flatten a pydantic error into a single readable message."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = err.get("msg", "invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


class EntityModel(BaseModel):
    """Shared identity contract: a unique ``name`` and an optional comment."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str
    comment: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value):
        return _check_config_id(value)

    @classmethod
    def resolve_field(cls, key: str) -> str:
        """Map a wire or python field name to the python attribute name."""
        for field_name, info in cls.model_fields.items():
            if key in (field_name, info.alias) or key.replace("-", "_") == field_name:
                return field_name
        raise ValueError(f"unknown property '{key}'")

    @classmethod
    def required_fields(cls) -> FrozenSet[str]:
        return frozenset(n for n, info in cls.model_fields.items() if info.is_required())

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation with absent fields omitted."""
        return _name_first(self.model_dump(by_alias=True, exclude_none=True, mode="json"))


class Endpoint(EntityModel):
    """Base class for delivery channels. Endpoint names share one namespace."""
    endpoint_type: ClassVar[str] = ""
    secret_fields: ClassVar[FrozenSet[str]] = frozenset()

    def public_dict(self) -> Dict[str, Any]:
        """Wire representation without secret fields."""
        return _name_first(self.model_dump(
            by_alias=True, exclude_none=True, exclude=set(self.secret_fields), mode="json"
        ))


class _MailRecipientsMixin(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    mailto: Optional[List[str]] = None
    mailto_user: Optional[List[str]] = Field(default=None, alias="mailto-user")

    @field_validator("mailto", mode="before")
    @classmethod
    def _validate_mailto(cls, value):
        value = _as_list(value)
        for entry in value or []:
            if not isinstance(entry, str) or not entry.strip() or any(c.isspace() for c in entry):
                raise ValueError(f"invalid email or username '{entry}'")
        return value

    @field_validator("mailto_user", mode="before")
    @classmethod
    def _validate_mailto_user(cls, value):
        value = _as_list(value)
        for entry in value or []:
            if not isinstance(entry, str) or not USER_ID_RE.match(entry):
                raise ValueError(f"invalid user id '{entry}': expected <user>@<realm>")
        return value

    @model_validator(mode="after")
    def _require_recipient(self):
        if not self.mailto and not self.mailto_user:
            raise ValueError("must at least provide one recipient (mailto or mailto-user)")
        return self


class SendmailEndpoint(Endpoint, _MailRecipientsMixin):
    """Mail delivery through the local sendmail binary."""
    endpoint_type: ClassVar[str] = "sendmail"

    from_address: Optional[str] = Field(default=None, alias="from-address")
    author: Optional[str] = None


class GotifyEndpoint(Endpoint):
    """Push delivery to a gotify server."""
    endpoint_type: ClassVar[str] = "gotify"
    secret_fields: ClassVar[FrozenSet[str]] = frozenset({"token"})

    server: str
    token: str

    @field_validator("server")
    @classmethod
    def _validate_server(cls, value):
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"invalid server URL '{value}': expected http(s)://host[:port]")
        return value

    @field_validator("token")
    @classmethod
    def _validate_token(cls, value):
        if not value:
            raise ValueError("token must not be empty")
        return value


SMTP_DEFAULT_PORTS = {"tls": 465, "starttls": 587, "insecure": 25}


class SmtpEndpoint(Endpoint, _MailRecipientsMixin):
    """Mail delivery through a remote SMTP relay."""
    endpoint_type: ClassVar[str] = "smtp"
    secret_fields: ClassVar[FrozenSet[str]] = frozenset({"password"})

    server: str
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    mode: Optional[Literal["insecure", "starttls", "tls"]] = None
    username: Optional[str] = None
    password: Optional[str] = None
    from_address: str = Field(alias="from-address")
    author: Optional[str] = None

    @field_validator("server", "from_address")
    @classmethod
    def _not_empty(cls, value):
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def effective_mode(self) -> str:
        return self.mode or "tls"

    @property
    def effective_port(self) -> int:
        return self.port or SMTP_DEFAULT_PORTS[self.effective_mode]


ENDPOINT_TYPES: Dict[str, Type[Endpoint]] = {
    "sendmail": SendmailEndpoint,
    "gotify": GotifyEndpoint,
    "smtp": SmtpEndpoint,
}


class Matcher(EntityModel):
    """A routing rule deciding which targets receive a notification."""

    match_field: Optional[List[str]] = Field(default=None, alias="match-field")
    match_severity: Optional[List[str]] = Field(default=None, alias="match-severity")
    match_calendar: Optional[List[str]] = Field(default=None, alias="match-calendar")
    target: Optional[List[str]] = None
    mode: Optional[Literal["all", "any"]] = None
    invert_match: Optional[bool] = Field(default=None, alias="invert-match")

    @field_validator("match_field", mode="before")
    @classmethod
    def _validate_match_field(cls, value):
        value = _as_list(value)
        for entry in value or []:
            FieldPredicate.parse(entry)
        return value

    @field_validator("match_severity", mode="before")
    @classmethod
    def _validate_match_severity(cls, value):
        value = _as_list(value)
        for entry in value or []:
            parse_severities(entry)
        return value

    @field_validator("match_calendar", mode="before")
    @classmethod
    def _validate_match_calendar(cls, value):
        value = _as_list(value)
        for entry in value or []:
            try:
                DailyDuration.parse(entry)
            except CalendarSyntaxError as e:
                raise ValueError(f"invalid match-calendar: {e}")
        return value

    @field_validator("target", mode="before")
    @classmethod
    def _validate_target(cls, value):
        value = _as_list(value)
        for entry in value or []:
            _check_config_id(entry, "target")
        return value

    @property
    def effective_mode(self) -> str:
        return self.mode or "all"

    @property
    def inverted(self) -> bool:
        return bool(self.invert_match)

    @property
    def targets(self) -> List[str]:
        return list(self.target or [])


class ConfigDocument(BaseModel):
    """The persisted configuration: endpoints grouped by kind, then matchers."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    sendmail: List[SendmailEndpoint] = Field(default_factory=list)
    gotify: List[GotifyEndpoint] = Field(default_factory=list)
    smtp: List[SmtpEndpoint] = Field(default_factory=list)
    matchers: List[Matcher] = Field(default_factory=list, alias="matcher")

    @field_validator("sendmail", "gotify", "smtp", "matchers", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return [] if value is None else value

    @model_validator(mode="after")
    def _unique_names(self):
        seen = set()
        for kind in ENDPOINT_TYPES:
            for endpoint in getattr(self, kind):
                if endpoint.name in seen:
                    raise ValueError(f"duplicate endpoint name '{endpoint.name}'")
                seen.add(endpoint.name)
        matcher_names = set()
        for matcher in self.matchers:
            if matcher.name in matcher_names:
                raise ValueError(f"duplicate matcher name '{matcher.name}'")
            matcher_names.add(matcher.name)
        return self


def validate_entity(model_cls: Type[EntityModel], data: Dict[str, Any]) -> EntityModel:
    """Build an entity, converting schema violations into ``ValidationError``."""
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(format_validation_error(e))
