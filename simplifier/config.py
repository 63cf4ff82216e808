"""
Run configuration.

One immutable SimplifyConfig is built per run and passed explicitly to every
file task; it is the only object shared between worker threads.  Validation
failures surface as ConfigError, the one fatal error of a run.
"""

from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from simplifier.errors import ConfigError
from simplifier.models import FindingKind

RULE_IDS = frozenset(k.value for k in FindingKind)

# Calls treated as side-effect free when deciding whether evaluation may be
# reordered.  Dotted names match the callee text; ".name" entries match any
# method call of that name (``el.querySelector(...)``).
DEFAULT_PURE_FUNCTIONS = frozenset({
    "String", "Number", "Boolean", "BigInt", "Symbol.for",
    "parseInt", "parseFloat", "isNaN", "isFinite",
    "encodeURIComponent", "decodeURIComponent", "encodeURI", "decodeURI",
    "Math.abs", "Math.ceil", "Math.floor", "Math.round", "Math.trunc",
    "Math.max", "Math.min", "Math.pow", "Math.sqrt", "Math.sign", "Math.hypot",
    "Array.isArray", "Array.of", "Number.isInteger", "Number.isFinite", "Number.isNaN",
    "Object.keys", "Object.values", "Object.entries", "Object.freeze",
    "JSON.stringify", "JSON.parse",
    ".querySelector", ".querySelectorAll", ".getAttribute", ".closest",
    ".trim", ".trimStart", ".trimEnd", ".toUpperCase", ".toLowerCase",
    ".toString", ".toFixed", ".padStart", ".padEnd", ".split", ".charAt",
    ".startsWith", ".endsWith", ".includes", ".indexOf", ".lastIndexOf",
    ".slice", ".concat", ".join", ".at",
    ".map", ".filter", ".some", ".every", ".find", ".findIndex",
    ".get", ".has",
})


class SimplifyConfig(BaseModel):
    """Immutable run-wide settings."""

    model_config = ConfigDict(frozen=True)

    enabled_rule_ids: FrozenSet[str] = RULE_IDS
    max_findings_per_file: int = 200
    suppression_marker: str = "simplify-ignore"
    apply_fixes: bool = False
    max_inline_depth: int = 5
    pure_functions: FrozenSet[str] = DEFAULT_PURE_FUNCTIONS
    file_timeout: float = 30.0
    max_workers: int = 4

    @field_validator("enabled_rule_ids")
    @classmethod
    def _known_rules(cls, value):
        if not value:
            raise ValueError("enabled_rule_ids must name at least one rule")
        unknown = sorted(set(value) - RULE_IDS)
        if unknown:
            raise ValueError(f"unknown rule id(s): {', '.join(unknown)}")
        return value

    @field_validator("max_findings_per_file", "max_inline_depth")
    @classmethod
    def _non_negative(cls, value):
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("file_timeout")
    @classmethod
    def _positive_timeout(cls, value):
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("max_workers")
    @classmethod
    def _at_least_one_worker(cls, value):
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("suppression_marker")
    @classmethod
    def _non_empty_marker(cls, value):
        if not value.strip():
            raise ValueError("suppression marker must not be blank")
        return value

    def rule_enabled(self, kind: FindingKind) -> bool:
        return kind.value in self.enabled_rule_ids


def build_config(**overrides) -> SimplifyConfig:
    """Build a SimplifyConfig, converting validation failures to ConfigError.

    ``None`` values are dropped so callers can pass optional CLI options
    straight through.
    """
    values = {k: v for k, v in overrides.items() if v is not None}
    if "enabled_rule_ids" in values:
        values["enabled_rule_ids"] = frozenset(values["enabled_rule_ids"])
    if "pure_functions" in values:
        values["pure_functions"] = DEFAULT_PURE_FUNCTIONS | frozenset(values["pure_functions"])
    try:
        return SimplifyConfig(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from e
