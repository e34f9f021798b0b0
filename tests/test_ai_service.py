import json
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from smartspend.backend.ai_service import AIService, normalize_category, normalize_expenses

TODAY = datetime(2024, 6, 19, 12, 0)


def chat_reply(payload):
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def openai_service(settings, reply):
    client = MagicMock()
    client.chat.completions.create.return_value = reply
    return AIService(settings, openai_client=client), client


@pytest.mark.parametrize("label,expected", [
    ("Groceries", "Groceries"),
    ("  groceries ", "Groceries"),
    ("Body Care", "BodyCare"),
    ("Restaurant", "Outings"),
    ("FUEL", "Petrol"),
    ("Crypto", "Miscellaneous"),
    (None, "Miscellaneous"),
])
def test_normalize_category(label, expected):
    assert normalize_category(label) == expected


def test_classify_expenses_with_openai(settings):
    service, client = openai_service(settings, chat_reply({"expenses": [
        {"amount": 120, "category": "Restaurant", "description": "Coffee", "date": "2024-06-18"},
        {"amount": "1,250", "category": "Fuel", "description": "Petrol"},
    ]}))

    expenses = service.classify_expenses("coffee 120 yesterday and petrol 1250", TODAY)

    assert [(e.amount, e.category) for e in expenses] == [(120, "Outings"), (1250, "Petrol")]
    assert expenses[0].date == datetime(2024, 6, 18)
    assert expenses[1].date == TODAY
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["response_format"] == {"type": "json_object"}


def test_items_without_valid_amount_are_dropped():
    expenses = normalize_expenses({"expenses": [
        {"category": "Groceries"},
        {"amount": -5, "category": "Groceries"},
        {"amount": "lots", "category": "Groceries"},
        {"amount": 40, "category": "Groceries", "description": ""},
        "junk",
    ]}, "milk 40", TODAY)
    assert len(expenses) == 1
    assert expenses[0].description == "milk 40"


def test_bad_ai_date_falls_back_to_today():
    expenses = normalize_expenses({"expenses": [{"amount": 10, "date": "someday"}]}, "x", TODAY)
    assert expenses[0].date == TODAY
    assert expenses[0].category == "Miscellaneous"


def test_malformed_json_returns_empty(settings):
    service, _ = openai_service(settings, chat_reply("not json at all"))
    assert service.classify_expenses("coffee 120", TODAY) == []


def test_wrong_shape_returns_empty(settings):
    service, _ = openai_service(settings, chat_reply({"items": []}))
    assert service.classify_expenses("coffee 120", TODAY) == []


def test_short_input_skips_the_model(settings):
    service, client = openai_service(settings, chat_reply({"expenses": []}))
    assert service.classify_expenses("ab", TODAY) == []
    assert service.classify_expenses("a b", TODAY) == []
    assert service.classify_expenses(" \n a  ", TODAY) == []
    client.chat.completions.create.assert_not_called()


def test_provider_errors_return_empty(settings):
    client = MagicMock()
    client.chat.completions.create.side_effect = RuntimeError("rate limited")
    service = AIService(settings, openai_client=client)
    assert service.classify_expenses("coffee 120", TODAY) == []


def test_unconfigured_provider_returns_empty(settings):
    assert AIService(settings).classify_expenses("coffee 120", TODAY) == []


def test_gemini_reply_with_code_fence(settings):
    model = MagicMock()
    model.generate_content.return_value = SimpleNamespace(
        text='```json\n{"expenses": [{"amount": 99, "category": "Orders"}]}\n```'
    )
    service = AIService(settings, gemini_model=model)
    assert AIService.set_provider("Gemini")

    expenses = service.classify_expenses("amazon cable 99", TODAY)
    assert [(e.amount, e.category) for e in expenses] == [(99, "Orders")]
    assert service.get_model_info() == {"provider": "Gemini", "model": "gemini-2.0-flash"}


def test_groq_uses_its_own_client(settings):
    groq = MagicMock()
    groq.chat.completions.create.return_value = chat_reply({"expenses": [{"amount": 15, "category": "Other"}]})
    service = AIService(settings, groq_client=groq)
    AIService.set_provider("groq")

    assert service.classify_expenses("stamp 15", TODAY)[0].category == "Other"
    assert groq.chat.completions.create.call_args.kwargs["model"] == "llama-3.1-8b-instant"


def test_set_provider_rejects_unknown_names():
    assert not AIService.set_provider("bogus")
    assert not AIService.set_provider(None)
    assert AIService.get_active_provider() == "openai"
