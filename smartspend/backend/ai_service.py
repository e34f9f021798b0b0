import google.generativeai as genai
from openai import OpenAI
import json
import logging
import datetime
from typing import List, Optional

from .config import load_settings
from .dates import parse_date
from .models import ParsedExpense, is_valid_category

logger = logging.getLogger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"

MODELS = {
    "openai": ("OpenAI", "gpt-4o-mini"),
    "gemini": ("Gemini", "gemini-2.0-flash"),
    "groq": ("Groq", "llama-3.1-8b-instant"),
}

# Free-text labels the model tends to return -> our fixed categories
CATEGORY_MAP = {
    'Groceries': 'Groceries', 'Grocery': 'Groceries', 'Food': 'Groceries',
    'Outings': 'Outings', 'Outing': 'Outings', 'Restaurant': 'Outings', 'Entertainment': 'Outings',
    'BodyCare': 'BodyCare', 'Body Care': 'BodyCare', 'Personal Care': 'BodyCare', 'Health': 'BodyCare',
    'Orders': 'Orders', 'Order': 'Orders', 'Shopping': 'Orders',
    'Petrol': 'Petrol', 'Fuel': 'Petrol', 'Transport': 'Petrol',
    'Miscellaneous': 'Miscellaneous', 'Misc': 'Miscellaneous',
    'Bills': 'Bills',
    'Savings': 'Savings',
    'Other': 'Other',
}

MIN_INPUT_LENGTH = 3


def normalize_category(label) -> str:
    """Coerce a free-text label into one of the fixed categories."""
    if not isinstance(label, str) or not label.strip():
        return 'Miscellaneous'
    label = label.strip()
    category = CATEGORY_MAP.get(label) or CATEGORY_MAP.get(''.join(label.split()))
    if category is None:
        # Case-insensitive retry for labels like "groceries" or "FUEL"
        lowered = {key.lower(): value for key, value in CATEGORY_MAP.items()}
        category = lowered.get(label.lower()) or lowered.get(''.join(label.lower().split()))
    return category if is_valid_category(category) else 'Miscellaneous'


def _coerce_amount(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = float(str(value).replace(',', ''))
    except (TypeError, ValueError):
        return None
    if amount != amount or amount < 0:  # NaN or negative
        return None
    return amount


def normalize_expenses(payload, text: str, today: datetime.datetime) -> List[ParsedExpense]:
    """Turn the model's JSON payload into validated ParsedExpense items."""
    items = payload.get('expenses') if isinstance(payload, dict) else None
    if not isinstance(items, list):
        return []

    expenses = []
    for item in items:
        if not isinstance(item, dict):
            continue
        amount = _coerce_amount(item.get('amount'))
        if amount is None:
            continue

        date = today
        if item.get('date'):
            try:
                date = parse_date(item['date'])
            except (TypeError, ValueError):
                logger.warning(f"Ignoring unparsable date from AI: {item['date']!r}")

        description = item.get('description')
        if not isinstance(description, str) or not description.strip():
            description = text

        expenses.append(ParsedExpense(
            amount=amount,
            category=normalize_category(item.get('category')),
            description=description.strip(),
            date=date,
        ))
    return expenses


class AIService:
    # State management for active provider
    _active_provider = "openai"  # default

    def __init__(self, settings=None, openai_client=None, gemini_model=None, groq_client=None):
        settings = settings or load_settings()

        # OpenAI Setup
        self.openai_client = openai_client
        if self.openai_client is None and settings.openai_api_key:
            self.openai_client = OpenAI(api_key=settings.openai_api_key)

        # Groq speaks the OpenAI wire format
        self.groq_client = groq_client
        if self.groq_client is None and settings.groq_api_key:
            self.groq_client = OpenAI(api_key=settings.groq_api_key, base_url=GROQ_BASE_URL)

        # Gemini Setup
        self.gemini_model = gemini_model
        if self.gemini_model is None and settings.gemini_api_key:
            genai.configure(api_key=settings.gemini_api_key)
            self.gemini_model = genai.GenerativeModel(MODELS["gemini"][1])

    @classmethod
    def set_provider(cls, provider):
        if provider and provider.lower() in MODELS:
            cls._active_provider = provider.lower()
            return True
        return False

    @classmethod
    def get_active_provider(cls):
        return cls._active_provider

    def get_model_info(self):
        provider, model = MODELS[self.get_active_provider()]
        return {"provider": provider, "model": model}

    def build_prompt(self, text, today):
        return f"""
        You are an intelligent expense parser. Extract one or more expenses from the user's input.
        Input: "{text}"

        Return ONLY a JSON object with a single key "expenses" which is an array of objects.
        Each object in the array should have:
        - "amount" (number, required)
        - "category" (one of: Groceries, Outings, BodyCare [e.g. shampoo, salon, gym, meds], Orders, Petrol, Miscellaneous, Bills, Savings, Other)
        - "description" (short summary)
        - "date" (ISO string, assume today is {today.isoformat()} if not specified)

        If amount is missing for an item, skip it.
        If category is unclear, use "Miscellaneous".
        """

    def _complete(self, prompt):
        """Send the prompt to the active provider and return the raw text reply."""
        provider = self.get_active_provider()
        if provider in ("openai", "groq"):
            client = self.openai_client if provider == "openai" else self.groq_client
            if not client:
                raise RuntimeError(f"{MODELS[provider][0]} not configured")
            response = client.chat.completions.create(
                model=MODELS[provider][1],
                messages=[
                    {"role": "system", "content": "You are a helpful assistant that parses expense text into JSON. Output valid JSON only."},
                    {"role": "user", "content": prompt}
                ],
                temperature=0.1,
                response_format={"type": "json_object"}
            )
            content = response.choices[0].message.content
        else:
            if not self.gemini_model:
                raise RuntimeError("Gemini not configured")
            response = self.gemini_model.generate_content(prompt)
            content = response.text.replace('```json', '').replace('```', '')

        if not content or not content.strip():
            raise ValueError("No content received from AI")
        return content.strip()

    def classify_expenses(self, text, today=None) -> List[ParsedExpense]:
        """
        Ask the active model to extract expenses from `text`.

        Best effort: any failure is logged and an empty list is returned, so
        callers keep whatever the heuristic parser already produced.
        """
        if not text or len(''.join(text.split())) < MIN_INPUT_LENGTH:
            return []

        today = today or datetime.datetime.now()
        try:
            content = self._complete(self.build_prompt(text, today))
            return normalize_expenses(json.loads(content), text, today)
        except Exception as e:
            logger.error(f"Error parsing with AI ({self.get_active_provider()}): {type(e).__name__}: {e}")
            return []
