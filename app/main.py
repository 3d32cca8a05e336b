"""
Streamlit Frontend for Jarvis Ledger

The console the ledger's owner uses day to day: type a command, pay a
card, split a paycheck, check the connections.

DESIGN PRINCIPLES:
1. Every action shows its structured outcome
2. Partial results are shown as warnings, never as success
3. Clear error messages naming what went wrong
4. No hidden actions: the UI only calls the ledger operations

Forms call the ledger operations directly; the command page goes
through the LLM parser and the same executor.
"""

import asyncio
from datetime import date
from decimal import Decimal

import streamlit as st

from jarvis_ledger.audit import configure_logging, create_correlation_id
from jarvis_ledger.config import get_settings, validate_all_settings
from jarvis_ledger.models.ledger import CREDIT_CARD_ACCOUNTS, FUNDING_ACCOUNTS, Account
from jarvis_ledger.models.results import OperationResult, OperationStatus
from jarvis_ledger.orchestrator import CommandFlow, LedgerService, create_app_components


# Page configuration
st.set_page_config(
    page_title="Jarvis Ledger",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .warning-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)

BOX_BY_STATUS = {
    OperationStatus.SUCCEEDED: "success-box",
    OperationStatus.PARTIAL: "warning-box",
    OperationStatus.SKIPPED: "warning-box",
    OperationStatus.FAILED: "error-box",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    configure_logging(get_settings().app.log_level)
    ledger, command_flow, sheets_client = create_app_components(use_storage=True)
    run_async(ledger.ensure_accounts())
    return ledger, command_flow, sheets_client


def account_names(accounts) -> list[str]:
    return [a.value for a in Account if a in accounts]


def render_result(title: str, result: OperationResult):
    """Show a result box colored by status, with the raw result below."""
    box = BOX_BY_STATUS[result.status]
    st.markdown(f"""
    <div class="{box}">
        <h4>{title}: {result.status.value}</h4>
        <p>{result.message or ""}</p>
    </div>
    """, unsafe_allow_html=True)
    if result.error is not None:
        st.caption(f"{result.error.kind.value}: {result.error.message}")
    with st.expander("🔍 Details"):
        st.json(result.model_dump(mode="json"))


def main():
    """Main application entry point."""
    ledger, command_flow, sheets_client = get_components()

    st.sidebar.title("💰 Jarvis Ledger")
    st.sidebar.markdown("---")
    if sheets_client is None:
        st.sidebar.warning("Google Sheets not configured: using in-memory storage")

    page = st.sidebar.radio(
        "Navigate to:",
        ["💬 Command", "💳 Pay Card", "💵 Split Income", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **Try commands like:**
        - "lunch 18.50 on sapphire"
        - "msft paid 3200"
        - "paid 500 to freedom unlimited from bills"
        """
    )

    if page == "💬 Command":
        render_command_page(command_flow)
    elif page == "💳 Pay Card":
        render_payment_page(ledger)
    elif page == "💵 Split Income":
        render_income_page(ledger)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_command_page(command_flow: CommandFlow):
    """Render the natural-language command page."""
    st.title("💬 Command")

    if command_flow is None:
        st.warning("Gemini is not configured. Set GEMINI_API_KEY to use commands.")
        return

    message = st.text_input(
        "What happened?",
        placeholder="e.g., groceries 64.20 at costco on sapphire",
    )

    if st.button("▶️ Run", type="primary") and message:
        with st.spinner("Working..."):
            outcome, action = run_async(
                command_flow.handle_message(message, correlation_id=create_correlation_id())
            )
        st.markdown(f"**Understood as:** `{action.action}`")
        render_result("Result", outcome)


def render_payment_page(ledger: LedgerService):
    """Render the credit card payment form."""
    st.title("💳 Pay a Credit Card")
    st.markdown("The payment settles the card's oldest balances first.")

    with st.form("payment"):
        col1, col2 = st.columns(2)
        with col1:
            source = st.selectbox("From", account_names(FUNDING_ACCOUNTS))
            amount = st.number_input("Amount", min_value=0.01, step=10.0, format="%.2f")
        with col2:
            destination = st.selectbox("To card", account_names(CREDIT_CARD_ACCOUNTS))
            paid_on = st.date_input("Date", value=date.today())
        note = st.text_input("Note (optional)")
        submitted = st.form_submit_button("💳 Record Payment", type="primary")

    if submitted:
        result = run_async(ledger.settle_payment(
            amount=Decimal(str(amount)).quantize(Decimal("0.01")),
            source_account=source,
            destination_account=destination,
            date=paid_on,
            note=note or None,
            correlation_id=create_correlation_id(),
        ))
        render_result("Payment", result)
        if result.applied:
            st.table([
                {
                    "balance": a.balance_id,
                    "applied": str(a.amount_applied),
                    "settled": "full" if a.fully_settled else "partial",
                    "note": a.note or "",
                }
                for a in result.applied
            ])


def parse_allocations(text: str) -> list[dict]:
    """Parse "account: percentage" lines."""
    allocations = []
    for line in text.splitlines():
        if ":" not in line:
            continue
        account, percentage = line.rsplit(":", 1)
        allocations.append({"account": account.strip(), "percentage": percentage.strip()})
    return allocations


def render_income_page(ledger: LedgerService):
    """Render the income split form and the rule editor."""
    st.title("💵 Split Income")
    rule_names = get_settings().ledger.known_rule_names_list

    with st.form("split"):
        col1, col2 = st.columns(2)
        with col1:
            rule_name = st.selectbox("Allocation rule", rule_names)
            gross = st.number_input("Gross amount", min_value=0.01, step=100.0, format="%.2f")
        with col2:
            received_on = st.date_input("Date", value=date.today())
            description = st.text_input("Description (optional)")
        submitted = st.form_submit_button("💵 Split", type="primary")

    if submitted:
        result = run_async(ledger.split_income(
            gross_amount=Decimal(str(gross)).quantize(Decimal("0.01")),
            rule_name=rule_name,
            date=received_on,
            description=description or None,
            correlation_id=create_correlation_id(),
        ))
        render_result("Split", result)
        if result.entries:
            st.table([
                {
                    "account": e.account,
                    "percentage": str(e.percentage),
                    "amount": str(e.amount),
                    "written": "yes" if e.succeeded else "no",
                }
                for e in result.entries
            ])

    st.markdown("---")
    with st.expander("✏️ Edit an allocation rule"):
        edit_name = st.text_input("Rule name", value=rule_names[0] if rule_names else "")
        lines = st.text_area(
            "One 'account: percentage' per line (fractions summing to 1)",
            placeholder="checkings: 0.6\nshort term savings: 0.3\nroth ira: 0.1",
        )
        if st.button("💾 Replace Rule") and edit_name:
            result = run_async(ledger.replace_rule(
                edit_name,
                parse_allocations(lines),
                correlation_id=create_correlation_id(),
            ))
            render_result("Rule", result)


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (Commands)", "gemini"),
        ("Ledger Policy", "ledger"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if status.get("ledger", False):
        ledger_settings = get_settings().ledger
        st.markdown("### Ledger Policy")
        st.json(ledger_settings.model_dump(mode="json"))

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your "
        "GOOGLE_SHEETS_*, GEMINI_* and LEDGER_* variables."
    )


if __name__ == "__main__":
    main()
