from __future__ import annotations

import ast

import pytest

from mapguard.analysis.invocation import is_map_action_invocation, ordered_arguments
from mapguard.analysis.well_known_types import WellKnownTypes
from tests.program_helpers import build_program, invocation_for


def _matches(text: str, callee: str) -> bool:
    program = build_program({"app.py": text})
    wkt = WellKnownTypes.try_create(program)
    assert wkt is not None
    return is_map_action_invocation(invocation_for(program, "app", callee), wkt)


def test_static_container_call_matches() -> None:
    assert _matches(
        """
        from minimal.builder import EndpointRouteBuilderExtensions

        EndpointRouteBuilderExtensions.MapGet(None, "/", print)
        """,
        "MapGet",
    )


def test_classmethod_call_counts_explicit_arguments_only() -> None:
    assert _matches(
        """
        from minimal.builder import EndpointRouteBuilderExtensions

        EndpointRouteBuilderExtensions.MapDelete(None, "/", print)
        """,
        "MapDelete",
    )


def test_module_attribute_access_matches() -> None:
    assert _matches(
        """
        import minimal.builder

        minimal.builder.EndpointRouteBuilderExtensions.MapPost(None, "/", print)
        """,
        "MapPost",
    )


def test_aliased_import_matches() -> None:
    assert _matches(
        """
        from minimal.builder import EndpointRouteBuilderExtensions as Routes

        Routes.MapGet(None, "/", print)
        """,
        "MapGet",
    )


def test_inherited_access_keeps_declaring_container() -> None:
    assert _matches(
        """
        from minimal.builder import EndpointRouteBuilderExtensions


        class Routes(EndpointRouteBuilderExtensions):
            pass


        Routes.MapGet(None, "/", print)
        """,
        "MapGet",
    )


def test_receiver_annotation_resolves_member() -> None:
    assert _matches(
        """
        from minimal.builder import EndpointRouteBuilderExtensions


        def configure(routes: EndpointRouteBuilderExtensions, app):
            routes.MapGet(app, "/", print)
        """,
        "MapGet",
    )


def test_keyword_arguments_count_toward_arity() -> None:
    assert _matches(
        """
        from minimal.builder import EndpointRouteBuilderExtensions

        EndpointRouteBuilderExtensions.MapGet(None, handler=print, pattern="/")
        """,
        "MapGet",
    )


@pytest.mark.parametrize(
    "text, callee",
    [
        (
            """
            from minimal.builder import EndpointRouteBuilderExtensions

            EndpointRouteBuilderExtensions.MapFallback(None, print)
            """,
            "MapFallback",
        ),
        (
            """
            from minimal.builder import RouteGroupExtensions

            RouteGroupExtensions.MapGet(None, "/", print)
            """,
            "MapGet",
        ),
        (
            """
            from minimal.builder import EndpointRouteBuilderExtensions

            EndpointRouteBuilderExtensions.UseEndpoint(None, "/", print)
            """,
            "UseEndpoint",
        ),
        (
            """
            from minimal.builder import EndpointRouteBuilderExtensions

            args = (None, "/", print)
            EndpointRouteBuilderExtensions.MapGet(*args)
            """,
            "MapGet",
        ),
        (
            """
            from minimal.builder import EndpointRouteBuilderExtensions

            kwargs = {"handler": print}
            EndpointRouteBuilderExtensions.MapGet(None, "/", **kwargs)
            """,
            "MapGet",
        ),
        (
            """
            def MapGet(endpoints, pattern, handler):
                return endpoints

            MapGet(None, "/", print)
            """,
            "MapGet",
        ),
        (
            """
            unknown.MapGet(None, "/", print)
            """,
            "MapGet",
        ),
    ],
)
def test_non_qualifying_invocations(text: str, callee: str) -> None:
    assert not _matches(text, callee)


def test_map_prefix_is_case_sensitive() -> None:
    text = """
        from minimal.builder import EndpointRouteBuilderExtensions


        class Lowercase(EndpointRouteBuilderExtensions):
            @staticmethod
            def mapGet(endpoints, pattern, handler):
                return endpoints


        Lowercase.mapGet(None, "/", print)
        """
    assert not _matches(text, "mapGet")


def test_ordered_arguments_places_keywords_in_parameter_order() -> None:
    program = build_program(
        {
            "app.py": """
                from minimal.builder import EndpointRouteBuilderExtensions

                EndpointRouteBuilderExtensions.MapDelete(handler=print, endpoints=None, pattern="/")
                """
        }
    )
    invocation = invocation_for(program, "app", "MapDelete")
    assert invocation.arguments is not None
    assert isinstance(invocation.arguments[2], ast.Name)
    assert invocation.arguments[2].id == "print"


def test_ordered_arguments_rejects_unpacking() -> None:
    call = ast.parse("f(*xs)", mode="eval").body
    assert isinstance(call, ast.Call)
    assert ordered_arguments(call, None) is None
