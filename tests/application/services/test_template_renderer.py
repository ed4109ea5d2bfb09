# tests/application/services/test_template_renderer.py
import pytest

from application.services.template_renderer import TemplateRenderer, stringify
from domain.api_response import ApiResponse
from domain.run import ScenarioReferenceEntry


@pytest.fixture
def references():
    return {
        "18409": ScenarioReferenceEntry(
            post={"click_trans_id": "18409", "amount": 1000, "nested": {"a": {"b": "deep"}}},
            request={"click_trans_id": "18409", "merchant_trans_id": "order-1"},
            response=ApiResponse.from_mapping(
                {"error": 0, "merchant_prepare_id": "P123", "meta": {"flag": True}}
            ),
        ),
        "11994": ScenarioReferenceEntry(post={"click_trans_id": "11994"}),
    }


class TestResolve:
    def test_string_without_placeholder_is_unchanged(self, references):
        renderer = TemplateRenderer()
        assert renderer.resolve("plain value", references) == "plain value"
        assert renderer.resolve("", references) == ""
        assert renderer.resolve("{ single }", references) == "{ single }"

    def test_scenario_form(self, references):
        renderer = TemplateRenderer()
        assert renderer.resolve("{{scenario.18409.response.merchant_prepare_id}}", references) == "P123"
        assert renderer.resolve("{{scenario.18409.request.merchant_trans_id}}", references) == "order-1"

    def test_shorthand_forms(self, references):
        renderer = TemplateRenderer()
        assert renderer.resolve("{{response.18409.merchant_prepare_id}}", references) == "P123"
        assert renderer.resolve("{{request.18409.merchant_trans_id}}", references) == "order-1"
        assert renderer.resolve("{{post.18409.amount}}", references) == "1000"

    def test_whitespace_inside_braces(self, references):
        renderer = TemplateRenderer()
        assert renderer.resolve("{{ response.18409.merchant_prepare_id }}", references) == "P123"

    def test_nested_path(self, references):
        renderer = TemplateRenderer()
        assert renderer.resolve("{{post.18409.nested.a.b}}", references) == "deep"
        assert renderer.resolve("{{response.18409.meta.flag}}", references) == "true"

    def test_multiple_placeholders_in_one_string(self, references):
        renderer = TemplateRenderer()
        raw = "id={{response.18409.merchant_prepare_id}}&order={{request.18409.merchant_trans_id}}"
        assert renderer.resolve(raw, references) == "id=P123&order=order-1"

    @pytest.mark.parametrize(
        "raw",
        [
            "{{response.99999.merchant_prepare_id}}",
            "{{response.18409.missing}}",
            "{{post.18409.amount.deeper}}",
            "{{response.11994.error}}",
            "{{scenario.18409.cookies.x}}",
            "{{vars.18409.x}}",
            "{{response.18409}}",
        ],
    )
    def test_unresolvable_placeholder_becomes_empty(self, references, raw):
        assert TemplateRenderer().resolve(raw, references) == ""

    def test_resolution_is_not_recursive(self):
        references = {
            "1": ScenarioReferenceEntry(post={"value": "{{post.2.value}}"}),
            "2": ScenarioReferenceEntry(post={"value": "inner"}),
        }
        assert TemplateRenderer().resolve("{{post.1.value}}", references) == "{{post.2.value}}"

    def test_mapping_leaf_is_rendered_as_json(self, references):
        assert TemplateRenderer().resolve("{{post.18409.nested.a}}", references) == '{"b":"deep"}'


class TestStringify:
    def test_scalars(self):
        assert stringify(None) == ""
        assert stringify(True) == "true"
        assert stringify(False) == "false"
        assert stringify(5.0) == "5"
        assert stringify(2.5) == "2.5"
        assert stringify(-5) == "-5"
        assert stringify("x") == "x"

    def test_containers(self):
        assert stringify([1, "a"]) == '[1,"a"]'
