"""Built-in action kinds and their parameter shapes."""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ActionError


class ActionKind(str, Enum):
    """Actions the engine knows how to execute."""

    FORMAT = "format"
    ADD = "add"


class FormatParameters(BaseModel):
    """Parameters of the ``format`` action.

    Attributes:
        format: Output format, or ``all`` for every format the action declares.
        artifacts: Template names restricting which markdown files are converted.
    """

    model_config = ConfigDict(extra="allow")

    format: str = "docx"
    artifacts: Optional[List[str]] = None

    @field_validator("artifacts", mode="before")
    @classmethod
    def _split_artifacts(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class AddParameters(BaseModel):
    """Parameters of the ``add`` action.

    Attributes:
        template: Name of the template to instantiate.
        prefix: Optional filename prefix; also exposed capitalized to the template.
    """

    model_config = ConfigDict(extra="allow")

    template: str
    prefix: Optional[str] = None

    def extra_variables(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


ActionParameters = Union[FormatParameters, AddParameters]

_PARAMETER_MODELS: dict[ActionKind, type[BaseModel]] = {
    ActionKind.FORMAT: FormatParameters,
    ActionKind.ADD: AddParameters,
}


def resolve_action_kind(name: str) -> ActionKind:
    """Map an action name to its kind.

    Raises:
        ActionError: If the engine has no implementation for ``name``.
    """
    try:
        return ActionKind(name)
    except ValueError:
        supported = ", ".join(kind.value for kind in ActionKind)
        raise ActionError(
            f"Action not implemented: {name}. Supported actions: {supported}"
        ) from None


def parse_parameters(kind: ActionKind, parameters: Mapping[str, Any] | None) -> ActionParameters:
    """Validate raw ``parameters`` into the parameter model of ``kind``.

    Raises:
        ActionError: If required parameters are missing or malformed.
    """
    data = {key: value for key, value in (parameters or {}).items() if value is not None}
    if kind is ActionKind.ADD and not data.get("template"):
        raise ActionError("template parameter is required for add action")
    try:
        return _PARAMETER_MODELS[kind].model_validate(data)  # type: ignore[return-value]
    except PydanticValidationError as exc:
        raise ActionError(f"Invalid parameters for {kind.value} action: {exc}") from exc


__all__ = [
    "ActionKind",
    "ActionParameters",
    "AddParameters",
    "FormatParameters",
    "parse_parameters",
    "resolve_action_kind",
]
