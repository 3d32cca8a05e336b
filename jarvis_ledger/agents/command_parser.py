"""
Natural-Language Command Parser

DESIGN DECISION: The LLM is a TRANSLATOR, not an ACCOUNTANT.

CRITICAL BOUNDARIES:
   - CAN: Pick one action from a closed set and fill in its arguments
   - CANNOT: Write to the ledger (the ActionExecutor does that)
   - CANNOT: Invent actions; anything that doesn't validate against
     the ParsedAction union becomes an "unknown" action
   - MUST: Leave out what the user didn't say (no guessed dates)

Account names, funding defaults and rule names in the prompt come from
the same constants the engine validates against, so the two never
drift apart.
"""

import json
import re
from datetime import timedelta
from typing import Any, Optional

import google.generativeai as genai
import structlog
from pydantic import ValidationError

from jarvis_ledger.config import get_settings
from jarvis_ledger.config.settings import GeminiSettings, LedgerSettings
from jarvis_ledger.models.actions import ParsedAction, UnknownAction, parsed_action_adapter
from jarvis_ledger.models.ledger import (
    CATEGORY_FUNDING_MAP,
    CREDIT_CARD_ACCOUNTS,
    FUNDING_ACCOUNTS,
    Account,
)
from jarvis_ledger.services.storage.cache import Clock, utc_now


logger = structlog.get_logger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def extract_json(text: str) -> Optional[Any]:
    """
    Pull the JSON object out of a model response.

    Handles code fences and chatter around the object. Returns None if
    there is no parseable object.
    """
    trimmed = (text or "").strip()
    fenced = _CODE_FENCE.search(trimmed)
    if fenced:
        trimmed = fenced.group(1).strip()

    start = trimmed.find("{")
    end = trimmed.rfind("}") + 1
    if start < 0 or end <= start:
        return None
    try:
        return json.loads(trimmed[start:end])
    except json.JSONDecodeError:
        return None


def _ordered(accounts) -> list[str]:
    # Keep enum order so the prompt is stable
    return [a.value for a in Account if a in accounts]


class CommandParser:
    """
    Turns a user message into exactly one ParsedAction.

    FLOW:
    1. Build the prompt (today's date, accounts, rule names)
    2. Ask Gemini for JSON
    3. Validate the JSON against the ParsedAction union
    4. Anything that fails along the way -> UnknownAction with a reason
    """

    def __init__(
        self,
        model: Optional[Any] = None,
        gemini_settings: Optional[GeminiSettings] = None,
        ledger_settings: Optional[LedgerSettings] = None,
        clock: Clock = utc_now,
    ):
        self._ledger = ledger_settings or LedgerSettings()
        self._clock = clock
        if model is None:
            self._settings = gemini_settings or get_settings().gemini
            self._configure_genai()
        else:
            self._model = model

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,  # Low for consistency
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    def build_prompt(self, message: str) -> str:
        """Build the action-inference prompt for one user message."""
        today = self._clock().date()
        yesterday = today - timedelta(days=1)
        accounts = ", ".join(a.value for a in Account)
        funding = ", ".join(_ordered(FUNDING_ACCOUNTS))
        cards = ", ".join(_ordered(CREDIT_CARD_ACCOUNTS))
        auto_funding = ", ".join(
            f'"{category}"->"{account.value}"'
            for category, account in CATEGORY_FUNDING_MAP.items()
        )
        rule_names = " | ".join(f'"{name}"' for name in self._ledger.known_rule_names_list)

        return f"""# ROLE
Finance command parser. Convert natural language to structured JSON for expense tracking.

# CONTEXT
today={today.isoformat()} | yesterday={yesterday.isoformat()}
accounts: [{accounts}]
funding_accounts: [{funding}]
credit_cards: [{cards}]
auto_funding: {{{auto_funding}}} (others->checkings)

# OUTPUT
Respond with ONLY valid JSON. No markdown, no explanation, no code fences.

# ACTIONS (choose exactly one)

## 1. add_transaction
Single expense or income.
{{"action":"add_transaction","args":{{"amount":number,"transaction_type":"expense"|"income","account?":string,"category?":string,"date?":"YYYY-MM-DD","note?":string,"funding_account?":string}}}}
- DEFAULT to "expense" for spending/purchases
- "income" only for money received that is not a paycheck
- For credit card expenses: account is the card, funding_account is the bucket that pays it

## 2. add_transaction_batch
Multiple transactions at once.
{{"action":"add_transaction_batch","args":{{"transactions":[...]}}}}

## 3. create_payment
Credit card payment (must mention a card name or "credit card payment").
{{"action":"create_payment","args":{{"amount":number,"from_account?":string,"to_account?":string,"date?":"YYYY-MM-DD","note?":string}}}}
from_account is a funding account, to_account is a credit card.

## 4. split_paycheck
ONLY when an employer/income source is mentioned, or "got paid".
{{"action":"split_paycheck","args":{{"gross_amount":number,"budget_name":{rule_names},"date?":"YYYY-MM-DD","description?":string}}}}
- "<employer> paid <amount>" or "<employer> <amount>" -> budget_name=<employer>
- "got paid <amount>" (no employer) -> budget_name="{self._ledger.default_rule_name}"

## 5. set_budget_rule
Create/update budget allocation percentages (fractions summing to 1).
{{"action":"set_budget_rule","args":{{"budget_name":string,"budgets":[{{"account":string,"percentage":number}}]}}}}

## 6. get_uncategorized_transactions
User wants to review inbox/uncategorized/"other" items.
{{"action":"get_uncategorized_transactions","args":{{}}}}

## 7. get_categories
User asks what categories exist.
{{"action":"get_categories","args":{{}}}}

## 8. update_transaction_category
Change category of one transaction by ID.
{{"action":"update_transaction_category","args":{{"expense_id":string,"category":string}}}}

## 9. update_transaction_categories_batch
Categorize multiple transactions.
{{"action":"update_transaction_categories_batch","args":{{"updates":[{{"expense_id":string,"category":string}}]}}}}

## 10. unknown
Nothing above fits.
{{"action":"unknown","reason":string}}

# CATEGORY INFERENCE (for expenses)
lunch|dinner|restaurant|eating out -> "out"
groceries|costco|trader joes|safeway|walmart -> "groceries"
uber|lyft|taxi -> "lyft"
amazon|online shopping -> "shopping"
paid <person>|venmo|zelle -> "zelle" (use account="checkings")
gas|shell|chevron -> "gas"
If unclear, omit category (will default to "other")

# FIELD RULES
- OMIT date if not specified (don't guess)
- OMIT optional fields if not inferable
- No card mentioned -> omit account (defaults to {self._ledger.default_expense_account})
- note: capture merchant/description from user message
- amount: extract number, handle "$" prefix

# INPUT
{message}"""

    async def parse(self, message: str) -> ParsedAction:
        """
        Parse a message into an action.

        Never raises for model or format problems: those become an
        UnknownAction carrying the reason.
        """
        prompt = self.build_prompt(message)
        try:
            response = await self._model.generate_content_async(prompt)
            text = response.text
        except Exception as e:
            logger.warning("command_model_failed", error=str(e))
            return UnknownAction(reason=f"Language model unavailable: {e}")

        data = extract_json(text)
        if data is None:
            logger.info("command_not_json", response=text[:200])
            return UnknownAction(reason="Model response was not JSON")

        try:
            action = parsed_action_adapter.validate_python(data)
        except ValidationError as e:
            logger.info("command_invalid_action", errors=e.error_count(), data=str(data)[:200])
            return UnknownAction(reason=f"Unsupported or malformed action: {data.get('action', '?')}")

        logger.info("command_parsed", action=action.action)
        return action
