"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across the build rule."""

    CONFIGURATION = "E_CONFIGURATION"
    UNSUPPORTED_TOOLCHAIN = "E_UNSUPPORTED_TOOLCHAIN"
    INCOMPATIBLE_RULE = "E_INCOMPATIBLE_RULE"
    UNSUPPORTED_ARCHITECTURE = "E_UNSUPPORTED_ARCHITECTURE"
    MISSING_TOOL = "E_MISSING_TOOL"
    LINK_STAGE = "E_LINK_STAGE"
    COMPILE = "E_COMPILE"


OUTPUT_TAIL_LINES = 20


class KmodError(Exception):
    """Build failure with a stable code, an optional remedy and key/value context.

    ``output`` holds diagnostics captured from a failing tool; only its last
    :data:`OUTPUT_TAIL_LINES` lines are rendered by ``str()``.
    """

    code: ErrorCode
    message: str
    hint: str | None
    context: dict[str, str]
    output: str

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.hint = hint
        self.context = dict(context or {})
        self.output = output

    def details(self) -> list[str]:
        return [f"{key}: {value}" for key, value in self.context.items() if value]

    def output_tail(self) -> list[str]:
        lines = self.output.rstrip().splitlines()
        return lines[-OUTPUT_TAIL_LINES:]

    def __str__(self) -> str:
        lines = [self.message]
        lines.extend(f"  {detail}" for detail in self.details())
        tail = self.output_tail()
        if tail:
            lines.append("Tool output:")
            lines.extend(f"  | {line}" for line in tail)
        if self.hint:
            lines.append(f"Hint: {self.hint}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": str(self.code),
            "error": type(self).__name__,
            "message": self.message,
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        if self.output:
            payload["output"] = self.output
        return payload


class ConfigurationError(KmodError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CONFIGURATION, hint=hint, context=context)


class UnsupportedToolchainError(KmodError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message, code=ErrorCode.UNSUPPORTED_TOOLCHAIN, hint=hint, context=context
        )


class IncompatibleRuleError(KmodError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.INCOMPATIBLE_RULE, hint=hint, context=context)


class UnsupportedArchitectureError(KmodError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message, code=ErrorCode.UNSUPPORTED_ARCHITECTURE, hint=hint, context=context
        )


class MissingToolError(KmodError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.MISSING_TOOL, hint=hint, context=context)


class CompileError(KmodError):
    """A translation unit of the module failed to compile."""

    def __init__(
        self,
        message: str,
        *,
        output: str = "",
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message, code=ErrorCode.COMPILE, hint=hint, context=context, output=output
        )


class LinkStageError(KmodError):
    """A stage of the module link pipeline failed.

    ``stage`` is the 1-based index of the failing stage. A
    :class:`kmodbuild.link.LinkStage` member also lends its label to the
    rendered message.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: int,
        output: str = "",
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        merged = {"stage": str(int(stage)), **dict(context or {})}
        super().__init__(
            message, code=ErrorCode.LINK_STAGE, hint=hint, context=merged, output=output
        )
        self.stage = int(stage)
        self.stage_label: str | None = getattr(stage, "label", None)

    def details(self) -> list[str]:
        stage = f"stage {self.stage}"
        if self.stage_label:
            stage = f"{stage} ({self.stage_label})"
        rest = [detail for detail in super().details() if not detail.startswith("stage: ")]
        return [stage, *rest]

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["stage"] = self.stage
        payload["output"] = self.output
        if self.stage_label:
            payload["stage_label"] = self.stage_label
        return payload


__all__ = [
    "OUTPUT_TAIL_LINES",
    "CompileError",
    "ConfigurationError",
    "ErrorCode",
    "IncompatibleRuleError",
    "KmodError",
    "LinkStageError",
    "MissingToolError",
    "UnsupportedArchitectureError",
    "UnsupportedToolchainError",
]
