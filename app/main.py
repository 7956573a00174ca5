"""
Streamlit Frontend for the Finance Tracker

This is the dashboard people sign into to track their money: accounts,
transactions, monthly budgets, recurring bills and receipts.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation for anything that writes in bulk (imports)
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No hidden actions except the daily due check, which is reported

Access is gated:
- Users sign in through the configured identity provider
- New users wait for an administrator's approval
- Everything shown is scoped to the signed-in user
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Optional

import streamlit as st

from finance_tracker.config import get_settings, validate_all_settings
from finance_tracker.csv_io import (
    TEMPLATE_CSV,
    backup_to_json,
    build_backup,
    export_filename,
    transactions_to_csv,
)
from finance_tracker.models import (
    RECEIPT_CATEGORIES,
    AccountType,
    RecurrenceFrequency,
    TransactionType,
    UserApproval,
)
from finance_tracker.orchestrator import (
    Backends,
    ImportFlow,
    ReceiptFlow,
    SignupFlow,
    UserComponents,
    create_backends,
    create_signup_flow,
    create_user_components,
)
from finance_tracker.services.image import ImageUploadError
from finance_tracker.services.storage import StorageError
from finance_tracker.store import FinanceStore
from finance_tracker.validation import FinanceValidator, InvalidInputError


# Page configuration
st.set_page_config(
    page_title="Personal Finance",
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
    .info-box {
        padding: 20px;
        background-color: #cce5ff;
        border-radius: 10px;
        border-left: 5px solid #004085;
        margin: 10px 0;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


CURRENCY = get_settings().app.currency_symbol

PAGES = [
    "📊 Dashboard",
    "🏦 Accounts",
    "💸 Transactions",
    "🎯 Budgets",
    "🔁 Recurring",
    "🧾 Receipts",
    "📥 Import & Export",
    "⚙️ Settings",
]
ADMIN_PAGE = "🛡️ Admin"


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def money(amount: Decimal) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}{CURRENCY}{abs(amount):,.2f}"


def show_invalid(error: InvalidInputError) -> None:
    """Show validator messages under a form."""
    for line in FinanceValidator().get_user_friendly_messages(error.result):
        st.error(line)


@st.cache_resource
def get_backends() -> Backends:
    """Get or create the process-wide backends (cached)."""
    try:
        return create_backends(use_storage=True)
    except Exception as e:
        st.error(f"Failed to connect to storage: {e}")
        return create_backends(use_storage=False)


def get_user_components(owner_id: str) -> UserComponents:
    """Per-session components, rebuilt if the signed-in user changes."""
    components = st.session_state.get("components")
    if components is None or components.store.owner_id != owner_id:
        if components is not None:
            components.store.stop_realtime()
        components = create_user_components(owner_id, get_backends())
        components.store.start_realtime()
        st.session_state.components = components
    return components


# =============================================================================
# SIGN-IN AND APPROVAL GATE
# =============================================================================

def current_identity() -> Optional[tuple[str, str, Optional[str]]]:
    """(owner_id, email, name) of the signed-in user, or None."""
    if st.session_state.get("local_identity"):
        return st.session_state.local_identity
    if not st.user.is_logged_in:
        return None
    email = st.user.get("email")
    owner_id = st.user.get("sub") or email
    return owner_id, email, st.user.get("name")


def render_sign_in() -> None:
    st.title("💰 Personal Finance")
    st.markdown("Sign in to see your accounts, budgets and bills.")

    if st.button("🔐 Sign in", type="primary"):
        st.login()

    if get_settings().app.debug_mode:
        st.markdown("---")
        if st.button("🧪 Continue as local user"):
            st.session_state.local_identity = ("local-dev", "dev@localhost", "Local Developer")
            st.rerun()


def render_pending(user: UserApproval) -> None:
    st.title("⏳ Waiting for approval")
    st.markdown(f"""
    <div class="warning-box">
        <h4>Thanks for signing up, {user.name or user.email}!</h4>
        <p>An administrator has been asked to approve your account.
        Come back once you've been approved.</p>
    </div>
    """, unsafe_allow_html=True)
    if st.button("🔄 Check again"):
        st.session_state.pop("approval", None)
        st.rerun()
    if st.button("Sign out"):
        sign_out()


def sign_out() -> None:
    components = st.session_state.get("components")
    if components is not None:
        components.store.stop_realtime()
    was_local = bool(st.session_state.get("local_identity"))
    st.session_state.clear()
    if was_local:
        st.rerun()
    else:
        st.logout()


def main():
    """Main application entry point."""
    identity = current_identity()
    if identity is None:
        render_sign_in()
        return

    owner_id, email, name = identity
    signup_flow = create_signup_flow(get_backends())

    user = st.session_state.get("approval")
    if user is None or user.owner_id != owner_id:
        try:
            user = run_async(signup_flow.ensure_registered(owner_id, email, name))
        except StorageError as e:
            st.error(f"Could not check your account: {e}")
            st.stop()
        if user.approved:
            st.session_state.approval = user

    if not user.approved:
        render_pending(user)
        return

    components = get_user_components(owner_id)
    store = components.store

    try:
        run_async(store.ensure_fresh())
        run_due_check_once(store)
    except StorageError as e:
        st.error(f"Could not load your data: {e}")
        st.stop()

    # Sidebar navigation
    st.sidebar.title("💰 Personal Finance")
    st.sidebar.caption(f"Signed in as {user.email}")
    st.sidebar.markdown("---")

    pages = PAGES + ([ADMIN_PAGE] if user.is_admin else [])
    page = st.sidebar.radio("Navigate to:", pages, index=0)

    st.sidebar.markdown("---")
    if st.sidebar.button("🔄 Refresh"):
        run_async(store.refresh())
        st.rerun()
    if st.sidebar.button("Sign out"):
        sign_out()

    # Route to appropriate page
    if page == "📊 Dashboard":
        render_dashboard_page(store)
    elif page == "🏦 Accounts":
        render_accounts_page(store)
    elif page == "💸 Transactions":
        render_transactions_page(store)
    elif page == "🎯 Budgets":
        render_budgets_page(store)
    elif page == "🔁 Recurring":
        render_recurring_page(store)
    elif page == "🧾 Receipts":
        render_receipts_page(components.receipt_flow)
    elif page == "📥 Import & Export":
        render_import_export_page(store, components.import_flow)
    elif page == ADMIN_PAGE:
        render_admin_page(signup_flow, user)
    elif page == "⚙️ Settings":
        render_settings_page(user)


def run_due_check_once(store: FinanceStore) -> None:
    """Generate due recurring transactions once per session per day."""
    today = store.today()
    if st.session_state.get("due_checked_on") == today:
        return
    generated = run_async(store.generate_due_transactions())
    st.session_state.due_checked_on = today
    if generated:
        st.toast(f"🔁 Added {len(generated)} recurring transaction(s) that came due")


# =============================================================================
# DASHBOARD
# =============================================================================

def render_dashboard_page(store: FinanceStore):
    """Render the overview page."""
    st.title("📊 Dashboard")

    income, expenses = store.get_month_totals()
    col1, col2, col3 = st.columns(3)
    col1.metric("Total balance", money(store.get_total_balance()))
    col2.metric("Income this month", money(income))
    col3.metric("Expenses this month", money(expenses))

    st.markdown("---")
    left, right = st.columns(2)

    with left:
        st.subheader("Recent transactions")
        recent = store.get_recent_transactions()
        if not recent:
            st.info("No transactions yet.")
        for t in recent:
            st.markdown(
                f"**{t.payee}** · {t.category} · {t.date.strftime('%d %b %Y')}  \n"
                f"{money(t.signed_amount)} · {store.account_name(t.account_id)}"
            )

        st.subheader("Budgets")
        for progress in store.get_budget_progress():
            label = (
                f"{progress.budget.category}: {money(progress.spent)} of "
                f"{money(progress.budget.amount)}"
            )
            st.progress(min(float(progress.percentage) / 100, 1.0), text=label)
            if progress.is_over:
                st.warning(f"Over budget by {money(-progress.remaining)}")

    with right:
        st.subheader("Upcoming bills")
        upcoming = store.get_upcoming_recurring()
        if not upcoming:
            st.info("Nothing due in the next few days.")
        for r in upcoming:
            overdue = r.next_due_date < store.today()
            badge = "🔴 Overdue" if overdue else "🟡 Due"
            st.markdown(
                f"**{r.payee}** · {money(r.amount)}  \n"
                f"{badge} {r.next_due_date.strftime('%d %b %Y')}"
            )
            render_recurring_actions(store, r, key_prefix="dash")


# =============================================================================
# ACCOUNTS
# =============================================================================

def account_form(key: str, account=None) -> Optional[dict]:
    """Account fields; returns the submitted data or None."""
    types = list(AccountType)
    with st.form(key, clear_on_submit=account is None):
        name = st.text_input("Name *", value=account.name if account else "")
        account_type = st.selectbox(
            "Type",
            options=types,
            index=types.index(account.type) if account else 0,
            format_func=lambda x: x.value.replace("_", " ").title(),
        )
        starting_balance = st.number_input(
            f"Starting balance ({CURRENCY})",
            value=float(account.starting_balance) if account else 0.0,
            step=0.01,
            format="%.2f",
        )
        color = st.color_picker("Color", value=account.color if account else "#3B82F6")
        if st.form_submit_button("💾 Save", type="primary"):
            return {
                "name": name,
                "type": account_type,
                "starting_balance": Decimal(str(starting_balance)),
                "color": color,
            }
    return None


def render_accounts_page(store: FinanceStore):
    """Render the accounts page."""
    st.title("🏦 Accounts")

    with st.expander("➕ Add account", expanded=not store.accounts):
        data = account_form("add_account")
        if data is not None:
            try:
                run_async(store.add_account(data))
                st.success("Account added")
                st.rerun()
            except InvalidInputError as e:
                show_invalid(e)

    for account in store.accounts:
        balance = store.get_account_balance(account.id)
        with st.expander(f"{account.name} · {money(balance)}"):
            st.caption(account.type.value.replace("_", " ").title())
            data = account_form(f"edit_account_{account.id}", account)
            if data is not None:
                try:
                    run_async(store.update_account(account.id, data))
                    st.rerun()
                except InvalidInputError as e:
                    show_invalid(e)
            if st.button("🗑️ Delete account", key=f"del_account_{account.id}"):
                run_async(store.delete_account(account.id))
                st.rerun()


# =============================================================================
# TRANSACTIONS
# =============================================================================

def transaction_form(store: FinanceStore, key: str, transaction=None) -> Optional[dict]:
    account_ids = [a.id for a in store.accounts]
    types = list(TransactionType)
    default_account = 0
    if transaction and transaction.account_id in account_ids:
        default_account = account_ids.index(transaction.account_id)

    with st.form(key, clear_on_submit=transaction is None):
        col1, col2 = st.columns(2)
        with col1:
            payee = st.text_input("Payee *", value=transaction.payee if transaction else "")
            category = st.text_input(
                "Category *",
                value=transaction.category if transaction else get_settings().app.default_category,
            )
            amount = st.number_input(
                f"Amount ({CURRENCY}) *",
                value=float(transaction.amount) if transaction else 0.0,
                min_value=0.0,
                step=0.01,
                format="%.2f",
            )
        with col2:
            account_id = st.selectbox(
                "Account *",
                options=account_ids,
                index=default_account,
                format_func=store.account_name,
            )
            tx_type = st.radio(
                "Type",
                options=types,
                index=types.index(transaction.type) if transaction else types.index(TransactionType.EXPENSE),
                format_func=lambda x: x.value.title(),
                horizontal=True,
            )
            tx_date = st.date_input("Date *", value=transaction.date if transaction else store.today())
        notes = st.text_area("Notes (optional)", value=(transaction.notes or "") if transaction else "")

        if st.form_submit_button("💾 Save", type="primary"):
            return {
                "account_id": account_id,
                "payee": payee,
                "category": category,
                "amount": Decimal(str(amount)),
                "type": tx_type,
                "date": tx_date,
                "notes": notes or None,
            }
    return None


def render_transactions_page(store: FinanceStore):
    """Render the transactions page."""
    st.title("💸 Transactions")

    if not store.accounts:
        st.info("Add an account first, then record transactions against it.")
        return

    with st.expander("➕ Add transaction"):
        data = transaction_form(store, "add_transaction")
        if data is not None:
            try:
                run_async(store.add_transaction(data))
                st.success("Transaction added")
                st.rerun()
            except InvalidInputError as e:
                show_invalid(e)

    account_filter = st.selectbox(
        "Filter by account",
        options=[None] + [a.id for a in store.accounts],
        format_func=lambda x: "All accounts" if x is None else store.account_name(x),
    )
    transactions = (
        store.get_transactions_for_account(account_filter)
        if account_filter else store.transactions
    )

    st.markdown("---")
    if not transactions:
        st.info("No transactions to show.")

    for t in transactions:
        title = f"{t.date.strftime('%d %b %Y')} · {t.payee} · {money(t.signed_amount)}"
        with st.expander(title):
            st.caption(f"{t.category} · {store.account_name(t.account_id)}")
            if t.notes:
                st.markdown(t.notes)
            data = transaction_form(store, f"edit_tx_{t.id}", t)
            if data is not None:
                try:
                    run_async(store.update_transaction(t.id, data))
                    st.rerun()
                except InvalidInputError as e:
                    show_invalid(e)
            if st.button("🗑️ Delete", key=f"del_tx_{t.id}"):
                run_async(store.delete_transaction(t.id))
                st.rerun()


# =============================================================================
# BUDGETS
# =============================================================================

def budget_form(key: str, budget=None) -> Optional[dict]:
    with st.form(key, clear_on_submit=budget is None):
        category = st.text_input("Category *", value=budget.category if budget else "")
        amount = st.number_input(
            f"Monthly limit ({CURRENCY}) *",
            value=float(budget.amount) if budget else 0.0,
            min_value=0.0,
            step=1.0,
            format="%.2f",
        )
        color = st.color_picker("Color", value=budget.color if budget else "#10B981")
        if st.form_submit_button("💾 Save", type="primary"):
            return {"category": category, "amount": Decimal(str(amount)), "color": color}
    return None


def render_budgets_page(store: FinanceStore):
    """Render the budgets page."""
    st.title("🎯 Budgets")
    st.markdown("Monthly limits per category. Spending resets on the 1st.")

    with st.expander("➕ Add budget", expanded=not store.budgets):
        data = budget_form("add_budget")
        if data is not None:
            try:
                run_async(store.add_budget(data))
                st.rerun()
            except InvalidInputError as e:
                show_invalid(e)

    for progress in store.get_budget_progress():
        budget = progress.budget
        st.markdown(f"### {budget.category}")
        st.progress(
            min(float(progress.percentage) / 100, 1.0),
            text=f"{money(progress.spent)} of {money(budget.amount)} ({progress.percentage}%)",
        )
        if progress.is_over:
            st.error(f"Over budget by {money(-progress.remaining)}")
        else:
            st.caption(f"{money(progress.remaining)} left")

        with st.expander("Edit"):
            data = budget_form(f"edit_budget_{budget.id}", budget)
            if data is not None:
                try:
                    run_async(store.update_budget(budget.id, data))
                    st.rerun()
                except InvalidInputError as e:
                    show_invalid(e)
            if st.button("🗑️ Delete budget", key=f"del_budget_{budget.id}"):
                run_async(store.delete_budget(budget.id))
                st.rerun()


# =============================================================================
# RECURRING
# =============================================================================

def pay_recurring(store: FinanceStore, recurring_id, shown_due_date: date) -> None:
    if run_async(store.mark_as_paid(recurring_id, expected_due_date=shown_due_date)) is None:
        st.toast("This bill was already handled")


def skip_recurring(store: FinanceStore, recurring_id, shown_due_date: date) -> None:
    if run_async(store.skip_next_occurrence(recurring_id, expected_due_date=shown_due_date)) is None:
        st.toast("This bill was already handled")


def render_recurring_actions(store: FinanceStore, recurring, key_prefix: str) -> None:
    """
    Pay / skip buttons for one template.

    The displayed due date is bound into the key and the callback, so a
    second click on an already-paid date does nothing.
    """
    due = recurring.next_due_date
    col1, col2 = st.columns(2)
    with col1:
        st.button(
            "✅ Mark as paid",
            key=f"{key_prefix}_pay_{recurring.id}_{due.isoformat()}",
            on_click=pay_recurring,
            args=(store, recurring.id, due),
        )
    with col2:
        st.button(
            "⏭️ Skip",
            key=f"{key_prefix}_skip_{recurring.id}_{due.isoformat()}",
            on_click=skip_recurring,
            args=(store, recurring.id, due),
        )


def recurring_form(store: FinanceStore, key: str, recurring=None) -> Optional[dict]:
    account_ids = [a.id for a in store.accounts]
    frequencies = list(RecurrenceFrequency)
    types = list(TransactionType)
    default_account = 0
    if recurring and recurring.account_id in account_ids:
        default_account = account_ids.index(recurring.account_id)

    with st.form(key, clear_on_submit=recurring is None):
        col1, col2 = st.columns(2)
        with col1:
            payee = st.text_input("Payee *", value=recurring.payee if recurring else "")
            category = st.text_input(
                "Category *",
                value=recurring.category if recurring else get_settings().app.default_category,
            )
            amount = st.number_input(
                f"Amount ({CURRENCY}) *",
                value=float(recurring.amount) if recurring else 0.0,
                min_value=0.0,
                step=0.01,
                format="%.2f",
            )
            tx_type = st.radio(
                "Type",
                options=types,
                index=types.index(recurring.type) if recurring else types.index(TransactionType.EXPENSE),
                format_func=lambda x: x.value.title(),
                horizontal=True,
            )
        with col2:
            account_id = st.selectbox(
                "Account *",
                options=account_ids,
                index=default_account,
                format_func=store.account_name,
            )
            frequency = st.selectbox(
                "Frequency",
                options=frequencies,
                index=frequencies.index(recurring.frequency) if recurring else frequencies.index(RecurrenceFrequency.MONTHLY),
                format_func=lambda x: x.value.title(),
            )
            start_date = st.date_input(
                "Start date *",
                value=recurring.start_date if recurring else store.today(),
            )
            next_due_date = None
            if recurring:
                next_due_date = st.date_input("Next due date", value=recurring.next_due_date)

        if st.form_submit_button("💾 Save", type="primary"):
            data = {
                "account_id": account_id,
                "payee": payee,
                "category": category,
                "amount": Decimal(str(amount)),
                "type": tx_type,
                "frequency": frequency,
                "start_date": start_date,
            }
            if recurring:
                data["next_due_date"] = next_due_date
                data["is_active"] = recurring.is_active
            return data
    return None


def render_recurring_page(store: FinanceStore):
    """Render the recurring transactions page."""
    st.title("🔁 Recurring")
    st.markdown(
        "Bills and income that repeat. When one comes due, a transaction is "
        "added the next time you open the app."
    )

    if not store.accounts:
        st.info("Add an account first.")
        return

    with st.expander("➕ Add recurring transaction"):
        data = recurring_form(store, "add_recurring")
        if data is not None:
            try:
                run_async(store.add_recurring(data))
                st.rerun()
            except InvalidInputError as e:
                show_invalid(e)

    for r in store.recurring:
        status = "▶️ Active" if r.is_active else "⏸️ Paused"
        title = (
            f"{r.payee} · {money(r.amount)} · {r.frequency.value} · "
            f"next {r.next_due_date.strftime('%d %b %Y')} · {status}"
        )
        with st.expander(title):
            st.caption(f"{r.category} · {store.account_name(r.account_id)}")
            if r.last_generated_date:
                st.caption(f"Last generated for {r.last_generated_date.strftime('%d %b %Y')}")

            if r.is_active:
                render_recurring_actions(store, r, key_prefix="rec")

            toggle_label = "⏸️ Pause" if r.is_active else "▶️ Resume"
            if st.button(toggle_label, key=f"toggle_{r.id}"):
                run_async(store.toggle_recurring_transaction(r.id))
                st.rerun()

            data = recurring_form(store, f"edit_recurring_{r.id}", r)
            if data is not None:
                try:
                    run_async(store.update_recurring(r.id, data))
                    st.rerun()
                except InvalidInputError as e:
                    show_invalid(e)

            if st.button("🗑️ Delete", key=f"del_recurring_{r.id}"):
                run_async(store.delete_recurring(r.id))
                st.rerun()


# =============================================================================
# RECEIPTS
# =============================================================================

def render_receipts_page(receipt_flow: ReceiptFlow):
    """Render the receipt upload and list page."""
    st.title("🧾 Receipts")

    if "receipt_state" not in st.session_state:
        st.session_state.receipt_state = "idle"  # idle, reviewing
    if "scan_result" not in st.session_state:
        st.session_state.scan_result = None

    if not receipt_flow.can_upload:
        st.warning("Receipt image hosting is not configured. See Settings.")

    # Step 1: Upload
    uploaded_file = st.file_uploader(
        "Choose a receipt photo",
        type=get_settings().app.supported_formats_list,
        help="Take a clear, well-lit photo of the whole receipt",
    )

    if uploaded_file and st.session_state.receipt_state == "idle":
        col1, col2 = st.columns(2)
        with col1:
            if receipt_flow.can_scan and st.button("🔍 Scan receipt", type="primary"):
                progress_bar = st.progress(0, text="Reading receipt...")
                st.session_state.scan_result = run_async(
                    receipt_flow.scan(
                        uploaded_file.getvalue(),
                        uploaded_file.name,
                        progress=lambda p: progress_bar.progress(p, text="Reading receipt..."),
                    )
                )
                st.session_state.receipt_state = "reviewing"
                st.rerun()
        with col2:
            if st.button("✍️ Enter details manually"):
                st.session_state.scan_result = None
                st.session_state.receipt_state = "reviewing"
                st.rerun()

    # Step 2: Review and save
    if st.session_state.receipt_state == "reviewing" and uploaded_file:
        scan = st.session_state.scan_result
        extracted = scan.extracted if scan else None

        if scan and scan.error:
            st.markdown(f"""
            <div class="warning-box">
                <h4>⚠️ Couldn't read everything</h4>
                <p>{scan.error}</p>
            </div>
            """, unsafe_allow_html=True)
        elif scan and not extracted.is_empty:
            st.markdown("""
            <div class="success-box">
                <h4>✅ Receipt scanned</h4>
                <p>Please check the details below and make any corrections.</p>
            </div>
            """, unsafe_allow_html=True)
        if scan:
            for tip in scan.tips:
                st.info(f"📷 {tip}")

        st.image(uploaded_file.getvalue(), width=300)

        with st.form("receipt_form"):
            col1, col2 = st.columns(2)
            with col1:
                store_name = st.text_input(
                    "Store",
                    value=(extracted.store_name or "") if extracted else "",
                )
                receipt_date = st.date_input(
                    "Date",
                    value=extracted.receipt_date if extracted and extracted.receipt_date else date.today(),
                )
                category = st.selectbox("Category", options=[None] + RECEIPT_CATEGORIES,
                                        format_func=lambda x: "None" if x is None else x)
            with col2:
                total = st.number_input(
                    f"Total ({CURRENCY})",
                    value=float(extracted.total_amount) if extracted and extracted.total_amount is not None else 0.0,
                    min_value=0.0,
                    step=0.01,
                    format="%.2f",
                )
                tax = st.number_input(
                    f"Tax ({CURRENCY})",
                    value=float(extracted.tax_amount) if extracted and extracted.tax_amount is not None else 0.0,
                    min_value=0.0,
                    step=0.01,
                    format="%.2f",
                )
                deductible = st.checkbox("Tax deductible")
            notes = st.text_area("Notes (optional)")

            if extracted and extracted.raw_text:
                with st.expander("📄 Recognized text"):
                    st.text(extracted.raw_text)

            save = st.form_submit_button("✅ Save receipt", type="primary", disabled=not receipt_flow.can_upload)

        if save:
            data = {
                "store_name": store_name,
                "receipt_date": receipt_date,
                "total_amount": Decimal(str(total)) if total else None,
                "tax_amount": Decimal(str(tax)) if tax else None,
                "category": category,
                "notes": notes,
                "raw_text": extracted.raw_text if extracted else None,
                "is_tax_deductible": deductible,
            }
            with st.spinner("Uploading receipt..."):
                try:
                    run_async(receipt_flow.save(uploaded_file.getvalue(), uploaded_file.name, data))
                    st.session_state.receipt_state = "idle"
                    st.session_state.scan_result = None
                    st.success("Receipt saved")
                    st.rerun()
                except InvalidInputError as e:
                    show_invalid(e)
                except (ImageUploadError, StorageError) as e:
                    st.error(f"Failed to save: {e}")

        if st.button("❌ Start over"):
            st.session_state.receipt_state = "idle"
            st.session_state.scan_result = None
            st.rerun()

    # Saved receipts
    st.markdown("---")
    receipts = run_async(receipt_flow.list())
    deductible_total = run_async(receipt_flow.tax_deductible_total())
    st.metric("Tax-deductible total", money(deductible_total))

    if not receipts:
        st.info("No receipts saved yet.")

    for receipt in receipts:
        when = receipt.receipt_date.strftime("%d %b %Y") if receipt.receipt_date else "No date"
        total = money(receipt.total_amount) if receipt.total_amount is not None else "No total"
        with st.expander(f"{when} · {receipt.store_name or 'Unknown store'} · {total}"):
            st.image(receipt.image_url, width=300)
            if receipt.category:
                st.caption(receipt.category)
            if receipt.is_tax_deductible:
                st.caption("Tax deductible")
            if receipt.notes:
                st.markdown(receipt.notes)
            if st.button("🗑️ Delete receipt", key=f"del_receipt_{receipt.id}"):
                run_async(receipt_flow.delete(receipt.id))
                st.rerun()


# =============================================================================
# IMPORT & EXPORT
# =============================================================================

def render_import_export_page(store: FinanceStore, import_flow: ImportFlow):
    """Render the CSV import and data export page."""
    st.title("📥 Import & Export")

    st.subheader("Import transactions from CSV")
    st.download_button(
        "📄 Download template",
        data=TEMPLATE_CSV,
        file_name="transactions_template.csv",
        mime="text/csv",
    )

    # A new uploader key after each commit clears the file and its preview
    if "import_nonce" not in st.session_state:
        st.session_state.import_nonce = 0
        st.session_state.import_parsed = None  # (file_id, ImportResult)
        st.session_state.import_outcome = None

    outcome = st.session_state.import_outcome
    if outcome is not None:
        if outcome.imported:
            st.success(f"Imported {outcome.imported} transaction(s)")
        for failure in outcome.failures:
            st.error(failure)
        st.session_state.import_outcome = None

    csv_file = st.file_uploader(
        "Choose a CSV file",
        type=["csv"],
        key=f"csv_upload_{st.session_state.import_nonce}",
    )
    if csv_file is not None:
        parsed = st.session_state.import_parsed
        if parsed is None or parsed[0] != csv_file.file_id:
            text = csv_file.getvalue().decode("utf-8-sig", errors="replace")
            parsed = (csv_file.file_id, run_async(import_flow.parse(text)))
            st.session_state.import_parsed = parsed
        result = parsed[1]

        # Account-not-found warnings stay in the result but are not shown
        for error in result.errors:
            st.error(error)

        if result.preview:
            st.markdown(f"**{len(result.preview)} transaction(s) ready to import**")
            st.dataframe(
                [
                    {
                        "Date": row.date.isoformat(),
                        "Payee": row.payee,
                        "Category": row.category,
                        "Account": row.account,
                        "Amount": f"{row.amount:.2f}",
                        "Type": row.type.value,
                    }
                    for row in result.preview
                ],
                use_container_width=True,
            )

        if result.can_import and st.button("✅ Confirm import", type="primary"):
            with st.spinner("Importing..."):
                outcome = run_async(import_flow.commit_import(result.preview))
            st.session_state.import_outcome = outcome
            st.session_state.import_parsed = None
            st.session_state.import_nonce += 1
            st.rerun()

    st.markdown("---")
    st.subheader("Export")

    col1, col2 = st.columns(2)
    with col1:
        st.download_button(
            "⬇️ Transactions (CSV)",
            data=transactions_to_csv(store.transactions, store.accounts),
            file_name=export_filename("transactions", "csv"),
            mime="text/csv",
        )
    with col2:
        backup = build_backup(store.accounts, store.transactions, store.budgets, store.recurring)
        st.download_button(
            "⬇️ Full backup (JSON)",
            data=backup_to_json(backup),
            file_name=export_filename("finance-backup", "json"),
            mime="application/json",
        )


# =============================================================================
# ADMIN
# =============================================================================

def render_admin_page(signup_flow: SignupFlow, admin: UserApproval):
    """Render the user approval page."""
    st.title("🛡️ User approvals")

    users = run_async(signup_flow.list_users(admin))
    pending = [u for u in users if not u.approved]
    st.metric("Waiting for approval", len(pending))

    for user in users:
        flags = []
        flags.append("✅ Approved" if user.approved else "⏳ Pending")
        if user.is_admin:
            flags.append("🛡️ Admin")
        st.markdown(f"**{user.name or user.email}** · {user.email} · {' · '.join(flags)}")
        st.caption(f"Signed up {user.created_at.strftime('%d %b %Y')}")

        if user.id == admin.id:
            continue

        col1, col2 = st.columns(2)
        try:
            with col1:
                if not user.approved:
                    if st.button("Approve", key=f"approve_{user.id}", type="primary"):
                        run_async(signup_flow.approve(admin, user.id))
                        st.rerun()
                elif st.button("Revoke access", key=f"revoke_{user.id}"):
                    run_async(signup_flow.revoke(admin, user.id))
                    st.rerun()
            with col2:
                label = "Remove admin" if user.is_admin else "Make admin"
                if st.button(label, key=f"admin_{user.id}"):
                    run_async(signup_flow.toggle_admin(admin, user.id))
                    st.rerun()
        except PermissionError as e:
            st.error(str(e))
        st.markdown("---")


# =============================================================================
# SETTINGS
# =============================================================================

def render_settings_page(user: UserApproval):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Account")
    st.markdown(f"Signed in as **{user.email}**")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Cloudinary (Receipt images)", "cloudinary"),
        ("Mindee (Receipt OCR)", "mindee"),
        ("SMTP (Signup notifications)", "smtp"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if get_backends().sheets_client is None:
        st.warning("Data is kept in memory and will be lost when the app restarts.")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables. Sign-in is configured "
        "in `.streamlit/secrets.toml` under `[auth]`."
    )


if __name__ == "__main__":
    main()
