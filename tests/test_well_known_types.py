from __future__ import annotations

import logging

from mapguard.analysis.well_known_types import WellKnownTypeNames, WellKnownTypes
from tests.program_helpers import FRAMEWORK_SOURCES, build_program


def test_try_create_resolves_every_type() -> None:
    program = build_program({})
    wkt = WellKnownTypes.try_create(program)
    assert wkt is not None
    assert wkt.route_extensions.qualname == "minimal.builder.EndpointRouteBuilderExtensions"
    assert wkt.binder_type_provider_metadata.qualname == (
        "minimal.mvc.binding.BinderTypeProviderMetadata"
    )
    assert wkt.bind_attribute is program.get_type_by_name("minimal.mvc.Bind")
    assert wkt.result.name == "Result"
    assert wkt.action_result.name == "ActionResult"
    assert wkt.convert_to_action_result.module == "minimal.mvc.infrastructure"


def test_try_create_is_all_or_nothing(caplog) -> None:
    files = {rel: text for rel, text in FRAMEWORK_SOURCES.items() if "http" not in rel}
    program = build_program(files, framework=False)
    with caplog.at_level(logging.DEBUG, logger="mapguard.analysis.well_known_types"):
        assert WellKnownTypes.try_create(program) is None
    assert "minimal.http.Result" in caplog.text


def test_names_follow_reexports() -> None:
    program = build_program(
        {"web/__init__.py": "from minimal.builder import EndpointRouteBuilderExtensions as Routes\n"}
    )
    names = WellKnownTypeNames(route_extensions="web.Routes")
    wkt = WellKnownTypes.try_create(program, names)
    assert wkt is not None
    assert wkt.route_extensions is program.get_type_by_name(
        "minimal.builder.EndpointRouteBuilderExtensions"
    )


def test_names_from_config_section() -> None:
    names = WellKnownTypeNames.from_section(
        {"result": " web.Result ", "bind_attribute": "", "unknown": "x", "action_result": 3}
    )
    assert names.result == "web.Result"
    assert names.bind_attribute == WellKnownTypeNames().bind_attribute
    assert names.action_result == WellKnownTypeNames().action_result
    assert WellKnownTypeNames.from_section(None) == WellKnownTypeNames()
    assert dict(names.items())["result"] == "web.Result"
