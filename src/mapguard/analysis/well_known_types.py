from __future__ import annotations

import logging
from dataclasses import dataclass, fields

from mapguard.analysis.model import ClassSymbol
from mapguard.analysis.program import CompiledProgram
from mapguard.config import TomlTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WellKnownTypeNames:
    route_extensions: str = "minimal.builder.EndpointRouteBuilderExtensions"
    binder_type_provider_metadata: str = "minimal.mvc.binding.BinderTypeProviderMetadata"
    # There isn't a good way to distinguish Bind from the allowed From* markers.
    bind_attribute: str = "minimal.mvc.Bind"
    result: str = "minimal.http.Result"
    action_result: str = "minimal.mvc.ActionResult"
    convert_to_action_result: str = "minimal.mvc.infrastructure.ConvertToActionResult"

    @classmethod
    def from_section(cls, section: TomlTable | None) -> "WellKnownTypeNames":
        if not isinstance(section, dict):
            return cls()
        overrides: dict[str, str] = {}
        for item in fields(cls):
            value = section.get(item.name)
            if isinstance(value, str) and value.strip():
                overrides[item.name] = value.strip()
        return cls(**overrides)

    def items(self) -> list[tuple[str, str]]:
        return [(item.name, getattr(self, item.name)) for item in fields(self)]


@dataclass(frozen=True)
class WellKnownTypes:
    route_extensions: ClassSymbol
    binder_type_provider_metadata: ClassSymbol
    bind_attribute: ClassSymbol
    result: ClassSymbol
    action_result: ClassSymbol
    convert_to_action_result: ClassSymbol

    @classmethod
    def try_create(
        cls,
        program: CompiledProgram,
        names: WellKnownTypeNames | None = None,
    ) -> "WellKnownTypes | None":
        """Resolve every well-known type, or return None if any is missing."""
        names = names or WellKnownTypeNames()
        resolved: dict[str, ClassSymbol] = {}
        for field_name, qualname in names.items():
            symbol = program.get_type_by_name(qualname)
            if symbol is None:
                logger.debug("well-known type %s (%s) not found", qualname, field_name)
                return None
            resolved[field_name] = symbol
        return cls(**resolved)
