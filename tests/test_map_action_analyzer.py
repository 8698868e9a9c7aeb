from __future__ import annotations

from pathlib import Path

import pytest

from mapguard.analysis import (
    DO_NOT_RETURN_ACTION_RESULTS_FROM_MAP_ACTIONS,
    DO_NOT_USE_MODEL_BINDING_ATTRIBUTES_ON_MAP_ACTION_PARAMETERS,
    MapActionAnalyzer,
    WellKnownTypeNames,
)
from mapguard.analysis.diagnostics import DiagnosticBag
from mapguard.analysis.driver import analyze_program
from mapguard.exceptions import NeverThrown
from mapguard.invariants import proof_mode_scope
from tests.program_helpers import analyze, build_program, column_of, line_of

BINDER_ON_LOCAL_HANDLER = """
    from typing import Annotated

    from minimal.builder import EndpointRouteBuilderExtensions
    from minimal.mvc import ModelBinder


    def configure(app):
        def handler(item: Annotated[int, ModelBinder()]):
            return item

        EndpointRouteBuilderExtensions.MapGet(app, "/items", handler)
    """

ACTION_RESULT_HANDLER = """
    from minimal.builder import EndpointRouteBuilderExtensions
    from minimal.mvc import OkObjectResult


    def get_item():
        return OkObjectResult()


    def configure(app):
        EndpointRouteBuilderExtensions.MapGet(app, "/items", get_item)
    """


def _ids(result) -> list[str]:
    return [diagnostic.id for diagnostic in result.diagnostics]


def test_supported_diagnostics_declares_both_rules() -> None:
    ids = [descriptor.id for descriptor in MapActionAnalyzer.supported_diagnostics]
    assert ids == ["ASP0003", "ASP0004"]
    assert all(d.enabled_by_default for d in MapActionAnalyzer.supported_diagnostics)


def test_binder_metadata_on_local_handler_reports_once() -> None:
    result = analyze({"app.py": BINDER_ON_LOCAL_HANDLER})
    assert result.enabled
    assert _ids(result) == ["ASP0003"]
    diagnostic = result.diagnostics[0]
    assert diagnostic.descriptor is DO_NOT_USE_MODEL_BINDING_ATTRIBUTES_ON_MAP_ACTION_PARAMETERS
    assert diagnostic.arguments == ("ModelBinder", "MapGet")
    assert diagnostic.message == (
        "ModelBinder should not be specified for a MapGet delegate parameter"
    )
    assert diagnostic.location.path == Path("app.py")
    assert diagnostic.location.line == line_of(BINDER_ON_LOCAL_HANDLER, "ModelBinder()")
    assert diagnostic.location.column == column_of(BINDER_ON_LOCAL_HANDLER, "ModelBinder()")


def test_action_result_return_reports_once() -> None:
    result = analyze({"app.py": ACTION_RESULT_HANDLER})
    assert _ids(result) == ["ASP0004"]
    diagnostic = result.diagnostics[0]
    assert diagnostic.descriptor is DO_NOT_RETURN_ACTION_RESULTS_FROM_MAP_ACTIONS
    assert diagnostic.arguments == ("MapGet",)
    assert diagnostic.message.startswith(
        "ActionResult instances should not be returned from a MapGet delegate parameter."
    )
    assert diagnostic.location.line == line_of(ACTION_RESULT_HANDLER, "return OkObjectResult()")


@pytest.mark.parametrize(
    "call",
    [
        'EndpointRouteBuilderExtensions.MapFallback(app, handler)',
        'RouteGroupExtensions.MapGet(app, "/items", handler)',
        'EndpointRouteBuilderExtensions.UseEndpoint(app, "/items", handler)',
        'EndpointRouteBuilderExtensions.MapGet(*[app, "/items", handler])',
    ],
)
def test_non_qualifying_calls_report_nothing(call: str) -> None:
    text = f"""
        from typing import Annotated

        from minimal.builder import EndpointRouteBuilderExtensions, RouteGroupExtensions
        from minimal.mvc import ModelBinder, OkObjectResult


        def configure(app):
            def handler(item: Annotated[int, ModelBinder()]):
                return OkObjectResult()

            {call}
        """
    result = analyze({"app.py": text})
    assert result.enabled
    assert result.diagnostics == ()
    assert result.matched == 0


def test_missing_framework_disables_analysis() -> None:
    text = """
        from typing import Annotated


        class ModelBinder:
            pass


        class OkObjectResult:
            pass


        class EndpointRouteBuilderExtensions:
            @staticmethod
            def MapGet(endpoints, pattern, handler):
                return endpoints


        def configure(app):
            def handler(item: Annotated[int, ModelBinder()]):
                return OkObjectResult()

            EndpointRouteBuilderExtensions.MapGet(app, "/items", handler)
        """
    result = analyze({"app.py": text}, framework=False)
    assert result.enabled is False
    assert result.diagnostics == ()
    assert result.invocations == 0


def test_missing_framework_type_in_proof_mode_is_invariant_failure() -> None:
    program = build_program({"app.py": "x = 1\n"}, framework=False)
    with proof_mode_scope(True):
        with pytest.raises(NeverThrown):
            MapActionAnalyzer().start_program(program)


def test_single_renamed_well_known_type_disables_analysis() -> None:
    names = WellKnownTypeNames(result="minimal.http.Missing")
    result = analyze(
        {"app.py": ACTION_RESULT_HANDLER},
        analyzer=MapActionAnalyzer(names),
    )
    assert result.enabled is False
    assert result.diagnostics == ()


def test_inline_and_referenced_handlers_report_alike() -> None:
    inline = analyze(
        {
            "app.py": """
                from minimal.builder import EndpointRouteBuilderExtensions
                from minimal.mvc import OkObjectResult


                def configure(app):
                    EndpointRouteBuilderExtensions.MapGet(app, "/items", lambda: OkObjectResult())
                """
        }
    )
    referenced = analyze({"app.py": ACTION_RESULT_HANDLER})
    assert [(d.id, d.arguments) for d in inline.diagnostics] == [
        (d.id, d.arguments) for d in referenced.diagnostics
    ]


def test_expression_bodied_binding_is_checked() -> None:
    result = analyze(
        {
            "app.py": """
                from minimal.builder import EndpointRouteBuilderExtensions
                from minimal.mvc import OkObjectResult

                get_item = lambda: OkObjectResult()


                def configure(app):
                    EndpointRouteBuilderExtensions.MapPost(app, "/items", get_item)
                """
        }
    )
    assert _ids(result) == ["ASP0004"]
    assert result.diagnostics[0].arguments == ("MapPost",)


def test_stub_handler_reports_parameters_but_not_returns() -> None:
    stub = """
        from typing import Annotated

        from minimal.mvc import ActionResult, Bind

        def create(payload: Annotated[str, Bind()]) -> ActionResult: ...
        """
    result = analyze(
        {
            "handlers.pyi": stub,
            "app.py": """
                from handlers import create
                from minimal.builder import EndpointRouteBuilderExtensions


                def configure(app):
                    EndpointRouteBuilderExtensions.MapPost(app, "/items", create)
                """,
        }
    )
    assert _ids(result) == ["ASP0003"]
    diagnostic = result.diagnostics[0]
    assert diagnostic.arguments == ("Bind", "MapPost")
    assert diagnostic.location.path == Path("handlers.pyi")
    assert diagnostic.location.line == line_of(stub, "Bind()")


def test_both_checks_run_on_the_same_handler() -> None:
    result = analyze(
        {
            "app.py": """
                from typing import Annotated

                from minimal.builder import EndpointRouteBuilderExtensions
                from minimal.mvc import Bind, ModelBinder, OkObjectResult


                def handler(a: Annotated[int, Bind()], b: Annotated[str, ModelBinder]):
                    return OkObjectResult()


                def configure(app):
                    EndpointRouteBuilderExtensions.MapGet(app, "/items", handler)
                """
        }
    )
    assert sorted(_ids(result)) == ["ASP0003", "ASP0003", "ASP0004"]


def test_analysis_is_idempotent_and_independent_of_worker_count() -> None:
    files = {
        "app.py": BINDER_ON_LOCAL_HANDLER,
        "other.py": ACTION_RESULT_HANDLER,
    }
    program = build_program(files)
    first = analyze_program(program)
    second = analyze_program(program)
    pooled = analyze_program(program, workers=4)
    rendered = [d.render() for d in first.diagnostics]
    assert rendered == [d.render() for d in second.diagnostics]
    assert rendered == [d.render() for d in pooled.diagnostics]
    assert len(rendered) == 2
    assert first.matched == pooled.matched == 2


def test_sink_receives_every_diagnostic() -> None:
    bag = DiagnosticBag()
    result = analyze({"app.py": ACTION_RESULT_HANDLER}, sink=bag)
    assert len(bag) == len(result.diagnostics) == 1
    assert bag.counts() == {"ASP0004": 1}
