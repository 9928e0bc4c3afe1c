"""
Tests for the markup the Streamlit app renders with unsafe_allow_html.

The app module is loaded from its file without a Streamlit runtime;
page-level calls are no-ops there and main() is not run.
"""

import importlib.util
from pathlib import Path

import pytest

from clientverse.models.client import Client


APP_PATH = Path(__file__).resolve().parents[1] / "app" / "main.py"

INJECTED = '<img src=x onerror="alert(1)">'


@pytest.fixture(scope="module")
def app_module():
    spec = importlib.util.spec_from_file_location("clientverse_app_main", APP_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestClientCardMarkup:

    def test_stored_values_are_escaped(self, app_module):
        client = Client(
            id="c1",
            user_id="u1",
            client_name=INJECTED,
            reference_name="<b>Vikram</b>",
            pan="<script>x</script>",
            mobiles=[{"value": "<i>98</i>"}],
            addresses=[{"type": "Current", "value": "<a href=x>home</a>"}],
        )

        markup = app_module.client_card_html(client)

        assert "<img" not in markup
        assert "<script>" not in markup
        assert "<b>Vikram" not in markup
        assert "<i>98" not in markup
        assert "<a href" not in markup
        assert "&lt;img src=x onerror=&quot;alert(1)&quot;&gt;" in markup
        assert '<div class="client-card">' in markup

    def test_placeholders_for_missing_values(self, app_module):
        markup = app_module.client_card_html(Client(id="c1", user_id="u1", client_name="Asha"))
        assert "<h4>Asha</h4>" in markup
        assert "<strong>Phone:</strong> -" in markup


def test_field_error_is_escaped(app_module):
    markup = app_module.field_error_html(INJECTED)
    assert "<img" not in markup
    assert markup.startswith('<p class="field-error">')
