"""
Streamlit Frontend for Bookkeeper

The interface a small-business owner uses daily: record income and
expenses, keep a product/service catalog, issue invoices, track bills,
manage accounts and read reports. Law firms also track clients and
their files. Everything works offline against the local database;
cloud sync is optional.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Validation messages shown next to the field they concern
3. Nothing fails silently: records kept only in memory are flagged
4. Visual feedback for all operations
"""

import asyncio
import html
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import streamlit as st

from bookkeeper.config import get_settings, validate_all_settings
from bookkeeper.logger import configure_logging
from bookkeeper.models import (
    AccountType,
    BusinessType,
    DashboardLayout,
    DateFormat,
    DocumentStatus,
    FileStatus,
    ProductType,
    TransactionType,
    format_currency,
    format_date,
)
from bookkeeper.models.currency import CURRENCIES
from bookkeeper.orchestrator import AppComponents, SaveOutcome, create_app_components, form_from_record
from bookkeeper.reports import EXPORT_FILENAMES, ExportView
from bookkeeper.security import EncryptionError
from bookkeeper.services.storage import Collections, StorageError
from bookkeeper.state import (
    Action,
    AppState,
    BannerDismissed,
    BannerKind,
    ConnectivityChanged,
    NetworkError,
    RecordDeleted,
    RecordSaved,
    RecordsLoaded,
    SaveFailed,
    ValidationFailed,
    reduce,
)
from bookkeeper.validation import parse_date


# Page configuration
st.set_page_config(
    page_title="Bookkeeper",
    page_icon="📒",
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
    .field-error {
        color: #dc3545;
        font-size: 0.85em;
        margin-top: -8px;
    }
    .unsaved-tag {
        color: #856404;
        background-color: #fff3cd;
        padding: 2px 6px;
        border-radius: 4px;
    }
    .big-number {
        font-size: 2em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)

# Deleting these also deletes records that hang off them
CASCADING_DELETES = {Collections.CLIENTS, Collections.CLIENT_FILES}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached), starting background sync."""
    configure_logging()
    components = create_app_components()
    components.sync_flow.start_periodic(get_settings().sync.interval_seconds)
    return components


# =============================================================================
# State helpers
# =============================================================================

def get_state() -> AppState:
    if "app_state" not in st.session_state:
        st.session_state.app_state = AppState()
    return st.session_state.app_state


def dispatch(action: Action) -> AppState:
    st.session_state.app_state = reduce(get_state(), action)
    return st.session_state.app_state


def refresh(components: AppComponents) -> None:
    """Reload record lists from storage, keeping records that only live in memory."""
    try:
        loaded = run_async(components.record_flow.load_all())
    except StorageError as e:
        dispatch(NetworkError(message=f"Could not read local data: {e}", retry_action="reload"))
        return
    except EncryptionError:
        return

    state = get_state()
    for name in RecordsLoaded.model_fields:
        stored_ids = {r.id for r in getattr(loaded, name)}
        unsaved = [
            r for r in state.records(name)
            if state.is_unsaved(r.id) and r.id not in stored_ids
        ]
        setattr(loaded, name, getattr(loaded, name) + unsaved)
    dispatch(loaded)


def handle_outcome(collection: str, outcome: SaveOutcome, success_message: str) -> bool:
    """Dispatch the right action for a save outcome. True when the form can be cleared."""
    if not outcome.validation.is_valid:
        dispatch(ValidationFailed(errors=outcome.validation.errors_by_field()))
        return False
    if outcome.persisted:
        dispatch(RecordSaved(collection=collection, record=outcome.record, message=success_message))
        return True
    if outcome.record is not None:
        dispatch(SaveFailed(collection=collection, record=outcome.record, error=outcome.error or ""))
        return True
    dispatch(NetworkError(message=f"Could not save: {outcome.error}"))
    return False


def field_error(field: str) -> None:
    message = get_state().form_errors.get(field)
    if message:
        st.markdown(f'<div class="field-error">{html.escape(message)}</div>', unsafe_allow_html=True)


def record_label(text: str, record_id) -> None:
    """Write user text, flagged when the record is not saved to disk."""
    label = html.escape(text or "")
    if get_state().is_unsaved(record_id):
        label += ' <span class="unsaved-tag">not saved</span>'
    st.markdown(label, unsafe_allow_html=True)


def render_banner(components: AppComponents) -> None:
    banner = get_state().banner
    if banner is None:
        return

    show = {
        BannerKind.SUCCESS: st.success,
        BannerKind.INFO: st.info,
        BannerKind.WARNING: st.warning,
        BannerKind.ERROR: st.error,
    }[banner.kind]
    show(banner.message)

    col1, col2, _ = st.columns([1, 1, 4])
    with col1:
        if st.button("Dismiss", key="dismiss_banner"):
            dispatch(BannerDismissed())
            st.rerun()
    with col2:
        if banner.retry_action == "sync_now" and st.button("Retry", key="retry_banner"):
            dispatch(run_async(components.sync_flow.sync_now()))
            st.rerun()
        if banner.retry_action == "reload" and st.button("Retry", key="retry_banner"):
            dispatch(BannerDismissed())
            refresh(components)
            st.rerun()
        if banner.retry_action == "retry_save" and st.button("Retry", key="retry_banner"):
            for collection, record in get_state().unsaved_records():
                outcome = run_async(components.record_flow.retry_save(collection, record))
                handle_outcome(collection, outcome, "Saved to disk")
            st.rerun()


def money(amount, config=None) -> str:
    if config is None:
        return format_currency(amount)
    return format_currency(amount, config.currency, config.locale.locale)


def show_date(value, config=None) -> str:
    return format_date(value, config.locale if config else None)


def option_index(options: list, value: Any) -> int:
    return options.index(value) if value in options else 0


# =============================================================================
# Edit and delete
# =============================================================================

def editing(collection: str, records) -> tuple[Optional[UUID], dict[str, Any]]:
    """(id, prefilled form) of the record being edited in collection, or (None, {})."""
    target = st.session_state.get("editing")
    if not target or target[0] != collection:
        return None, {}
    for record in records:
        if str(record.id) == target[1]:
            return record.id, form_from_record(record)
    return None, {}


def stop_editing() -> None:
    st.session_state.editing = None


def edit_banner(collection: str, edit_id: Optional[UUID], what: str) -> None:
    if edit_id is None:
        return
    st.info(f"Editing {what}")
    if st.button("Cancel edit", key=f"cancel_edit_{collection}"):
        stop_editing()
        st.rerun()


def save_and_close(collection: str, outcome: SaveOutcome, message: str) -> None:
    if handle_outcome(collection, outcome, message):
        stop_editing()
    st.rerun()


def row_actions(collection: str, record_id, edit_col=None, delete_col=None) -> None:
    """Edit and delete buttons for a listed record."""
    if edit_col is not None and edit_col.button("✏️", key=f"edit_{record_id}"):
        st.session_state.editing = (collection, str(record_id))
        st.rerun()
    if delete_col is not None and delete_col.button("🗑️", key=f"delete_{record_id}"):
        st.session_state.confirm_delete = f"{collection}:{record_id}"
        st.rerun()


def confirm_delete(components: AppComponents, collection: str, record_id, label: str) -> None:
    """Ask before deleting; shown under the row whose delete button was pressed."""
    if st.session_state.get("confirm_delete") != f"{collection}:{record_id}":
        return
    st.warning(f"Delete \"{label}\"? This cannot be undone.")
    yes, no = st.columns(2)
    if yes.button("Yes, delete", key=f"confirm_{record_id}"):
        result = run_async(components.record_flow.delete(collection, record_id))
        if result.error:
            dispatch(NetworkError(message=f"Could not delete: {result.error}"))
        else:
            dispatch(RecordDeleted(collection=collection, record_id=str(record_id)))
            if collection in CASCADING_DELETES:
                refresh(components)
        st.session_state.confirm_delete = None
        st.rerun()
    if no.button("Cancel", key=f"cancel_{record_id}"):
        st.session_state.confirm_delete = None
        st.rerun()


# =============================================================================
# Main
# =============================================================================

def main():
    """Main application entry point."""
    components = get_components()

    if "loaded" not in st.session_state:
        refresh(components)
        st.session_state.loaded = True

    if components.storage_fallback:
        st.warning(
            "⚠️ The local database could not be opened. Your data is kept in memory "
            "only and will be lost when the app closes."
        )

    try:
        config = run_async(components.record_flow.get_business_config())
    except EncryptionError:
        render_sign_in_required(components)
        return

    if config is None or not config.setup_complete:
        render_onboarding_page(components)
        return

    # Sidebar navigation
    st.sidebar.title(f"📒 {config.name}")
    st.sidebar.markdown("---")

    pages = [
        "🏠 Dashboard",
        "💸 Transactions",
        "🏦 Accounts",
        "📦 Products & Services",
        "🧾 Invoices",
        "📥 Bills",
        "📊 Reports",
        "⚙️ Settings",
    ]
    if config.type == BusinessType.LEGAL:
        pages.insert(2, "⚖️ Clients & Files")
    page = st.sidebar.radio("Navigate to:", pages, index=0)

    st.sidebar.markdown("---")
    render_sync_sidebar(components)

    render_banner(components)

    # Route to appropriate page
    if page == "🏠 Dashboard":
        render_dashboard_page(components, config)
    elif page == "💸 Transactions":
        render_transactions_page(components, config)
    elif page == "⚖️ Clients & Files":
        render_legal_page(components, config)
    elif page == "🏦 Accounts":
        render_accounts_page(components, config)
    elif page == "📦 Products & Services":
        render_catalog_page(components, config)
    elif page == "🧾 Invoices":
        render_documents_page(components, config, Collections.INVOICES)
    elif page == "📥 Bills":
        render_documents_page(components, config, Collections.BILLS)
    elif page == "📊 Reports":
        render_reports_page(components, config)
    elif page == "⚙️ Settings":
        render_settings_page(components, config)


def render_sync_sidebar(components: AppComponents) -> None:
    state = get_state()
    online = st.sidebar.toggle("Online", value=state.online)
    if online != state.online:
        dispatch(ConnectivityChanged(online=online))
        completed = run_async(components.sync_flow.set_online(online))
        if completed is not None:
            dispatch(completed)
        st.rerun()

    if components.sync_flow.enabled:
        pending = run_async(components.sync_flow.queue_size())
        st.sidebar.caption(f"☁️ {pending} change(s) waiting to sync")
        if components.sync_flow.periodic_running:
            st.sidebar.caption(f"Syncing every {get_settings().sync.interval_seconds}s")
    else:
        st.sidebar.caption("☁️ Cloud sync is off")

    if state.unsaved_ids:
        st.sidebar.warning(f"{len(state.unsaved_ids)} record(s) not saved to disk")


# =============================================================================
# Sign in and onboarding
# =============================================================================

def render_sign_in_form(components: AppComponents) -> None:
    with st.form("sign_in"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in")
    if submitted:
        result = run_async(components.session_flow.sign_in(email, password))
        if result.signed_in:
            st.session_state.pop("loaded", None)
            st.rerun()
        st.error(result.message)


def restore_from_backup(components: AppComponents) -> bool:
    """Pull the remote backup into local storage and reload. True when anything was restored."""
    outcome = run_async(components.sync_flow.restore())
    if outcome.error:
        st.error(f"Restore failed: {outcome.error}")
        return False
    refresh(components)
    st.success(f"Restored {outcome.restored} record(s); {outcome.unchanged} already up to date.")
    if outcome.skipped:
        st.warning(f"{outcome.skipped} record(s) could not be read. Sign in with the same password and try again.")
    return outcome.restored > 0


def render_sign_in_required(components: AppComponents) -> None:
    st.title("🔒 Sign in")
    st.markdown("Your data on this device is encrypted. Sign in to unlock it.")
    render_sign_in_form(components)


def render_onboarding_page(components: AppComponents) -> None:
    st.title("👋 Welcome to Bookkeeper")
    st.markdown("Tell us about your business to get started.")
    render_banner(components)

    with st.form("onboarding"):
        name = st.text_input("Business name")
        field_error("name")
        business_type = st.radio(
            "Business type",
            options=list(BusinessType),
            format_func=lambda t: "Law firm" if t == BusinessType.LEGAL else "General business",
        )
        field_error("type")
        currency = st.selectbox("Currency", options=list(CURRENCIES))
        submitted = st.form_submit_button("Start", type="primary")

    if submitted:
        outcome = run_async(components.record_flow.save_business_config({
            "name": name,
            "type": business_type,
            "currency": currency,
        }))
        if outcome.validation.is_valid and outcome.persisted:
            st.rerun()
        elif not outcome.validation.is_valid:
            dispatch(ValidationFailed(errors=outcome.validation.errors_by_field()))
            st.rerun()
        else:
            st.error(f"Could not save your business profile: {outcome.error}")

    if components.sync_flow.has_remote:
        st.markdown("---")
        st.markdown("Already using Bookkeeper on another device? Sign in, then restore your backup.")
        if not components.session_flow.signed_in:
            render_sign_in_form(components)
        elif st.button("⬇️ Restore from backup", key="onboarding_restore"):
            if restore_from_backup(components):
                st.rerun()


# =============================================================================
# Dashboard
# =============================================================================

def render_dashboard_page(components: AppComponents, config) -> None:
    st.title("🏠 Dashboard")
    today = date.today()

    metrics = run_async(components.report_flow.dashboard_metrics(today))

    col1, col2, col3 = st.columns(3)
    col1.metric("Revenue (this month)", money(metrics.total_revenue, config))
    col2.metric("Expenses (this month)", money(metrics.total_expenses, config))
    col3.metric("Net income", money(metrics.net_income, config))

    col4, col5, col6 = st.columns(3)
    col4.metric("Cash balance", money(metrics.cash_balance, config))
    col5.metric("Receivables", money(metrics.accounts_receivable, config))
    col6.metric("Payables", money(metrics.accounts_payable, config))

    if config.ui_preferences.dashboard_layout == DashboardLayout.LEGAL:
        legal = run_async(components.report_flow.legal_report())
        col7, col8, col9 = st.columns(3)
        col7.metric("Outstanding client balances", money(legal.total_outstanding, config))
        col8.metric("Client funds held", money(legal.total_funds_held, config))
        col9.metric("Active files", legal.active_files)

    st.markdown("---")
    st.subheader("Cash flow (last 6 months)")
    flow = run_async(components.report_flow.cash_flow(6, today))
    st.bar_chart(
        {
            "Income": {m.label: float(m.income) for m in flow},
            "Expenses": {m.label: float(m.expenses) for m in flow},
        }
    )

    st.subheader("Recent transactions")
    recent = run_async(components.report_flow.recent_transactions(5))
    if not recent:
        st.info("No transactions yet. Add one on the Transactions page.")
    for tx in recent:
        sign = "+" if tx.type == TransactionType.INCOME else "-"
        st.write(
            f"{show_date(tx.date, config) or 'No date'}: {tx.description} "
            f"({tx.category}) {sign}{money(tx.amount, config)}"
        )


# =============================================================================
# Transactions
# =============================================================================

def render_transactions_page(components: AppComponents, config) -> None:
    st.title("💸 Transactions")
    state = get_state()
    edit_id, prefill = editing(Collections.TRANSACTIONS, state.transactions)
    edit_banner(Collections.TRANSACTIONS, edit_id, "transaction")

    types = list(TransactionType)
    categories = [c.name for c in run_async(components.repository.list_expense_categories(config.type))]
    category_options = [""] + categories + ["Sales", "Consulting", "Other"]
    if prefill.get("category") and prefill["category"] not in category_options:
        category_options.append(prefill["category"])
    account_options = [""] + [a.name for a in run_async(components.repository.list_active_accounts())]

    with st.form(f"transaction_form_{edit_id or 'new'}", clear_on_submit=False):
        col1, col2 = st.columns(2)
        with col1:
            tx_type = st.radio(
                "Type",
                options=types,
                index=option_index(
                    types, TransactionType(prefill.get("type") or config.ui_preferences.default_transaction_type)
                ),
                format_func=lambda t: t.value.title(),
                horizontal=True,
            )
            field_error("type")
            amount = st.text_input("Amount", value=prefill.get("amount", ""), placeholder="0.00")
            field_error("amount")
            tx_date = st.date_input("Date", value=parse_date(prefill.get("date")) or date.today())
            field_error("date")
        with col2:
            description = st.text_input(
                "Description",
                value=prefill.get("description", ""),
                placeholder='e.g. "Payment from Acme" or "Paid to Office Depot"',
            )
            field_error("description")
            category = st.selectbox(
                "Category",
                options=category_options,
                index=option_index(category_options, prefill.get("category")),
            )
            field_error("category")
            account = st.selectbox(
                "Account",
                options=account_options,
                index=option_index(account_options, prefill.get("account")),
            )
        label = "💾 Update transaction" if edit_id else "💾 Save transaction"
        submitted = st.form_submit_button(label, type="primary")

    if submitted:
        outcome = run_async(components.record_flow.save_transaction({
            **prefill,
            "type": tx_type,
            "amount": amount,
            "date": tx_date,
            "description": description,
            "category": category,
            "account": account,
        }, existing_id=edit_id))
        save_and_close(Collections.TRANSACTIONS, outcome, "Transaction updated" if edit_id else "Transaction saved")

    st.markdown("---")
    if not state.transactions:
        st.info("No transactions recorded yet.")
        return

    for tx in sorted(state.transactions, key=lambda t: (t.date or date.min), reverse=True):
        col1, col2, col3, col4, col5 = st.columns([2, 4, 2, 1, 1])
        col1.write(show_date(tx.date, config) or "No date")
        with col2:
            record_label(tx.description, tx.id)
        sign = "+" if tx.type == TransactionType.INCOME else "-"
        col3.write(f"{sign}{money(tx.amount, config)}")
        row_actions(Collections.TRANSACTIONS, tx.id, col4, col5)
        confirm_delete(components, Collections.TRANSACTIONS, tx.id, tx.description)


# =============================================================================
# Accounts and transfers
# =============================================================================

def render_accounts_page(components: AppComponents, config) -> None:
    st.title("🏦 Accounts")
    state = get_state()
    accounts = state.accounts
    names = {str(a.id): a.name for a in accounts}

    tab_accounts, tab_transfer, tab_history = st.tabs(["Accounts", "Transfer", "Transfer history"])

    with tab_accounts:
        edit_id, prefill = editing(Collections.ACCOUNTS, accounts)
        edit_banner(Collections.ACCOUNTS, edit_id, "account")
        account_types = list(AccountType)

        with st.form(f"account_form_{edit_id or 'new'}"):
            col1, col2 = st.columns(2)
            name = col1.text_input("Account name", value=prefill.get("name", ""))
            with col1:
                field_error("name")
            account_type = col2.selectbox(
                "Type",
                options=account_types,
                index=option_index(account_types, AccountType(prefill.get("account_type") or "checking")),
                format_func=lambda t: t.value.title(),
            )
            bank_name = col1.text_input("Bank", value=prefill.get("bank_name", ""))
            account_number = col2.text_input("Account number", value=prefill.get("account_number", ""))
            balance = col1.text_input("Current balance", value=prefill.get("current_balance", "0"))
            with col1:
                field_error("current_balance")
            is_default = col2.checkbox("Default account", value=bool(prefill.get("is_default")))
            is_active = col2.checkbox("Active", value=prefill.get("is_active", True))
            submitted = st.form_submit_button("💾 Save account", type="primary")

        if submitted:
            outcome = run_async(components.record_flow.save_account({
                "name": name,
                "account_type": account_type,
                "bank_name": bank_name,
                "account_number": account_number,
                "current_balance": balance,
                "is_default": is_default,
                "is_active": is_active,
            }, existing_id=edit_id))
            save_and_close(Collections.ACCOUNTS, outcome, "Account saved")

        st.markdown("---")
        if not accounts:
            st.info("No accounts yet.")
        for account in accounts:
            col1, col2, col3, col4, col5 = st.columns([3, 2, 2, 1, 1])
            with col1:
                suffix = "" if account.is_active else " (inactive)"
                record_label(f"{account.name}{suffix}", account.id)
            col2.write(account.account_type.value.title())
            col3.write(money(account.current_balance, config))
            row_actions(Collections.ACCOUNTS, account.id, col4, col5)
            confirm_delete(components, Collections.ACCOUNTS, account.id, account.name)

    with tab_transfer:
        active = [str(a.id) for a in accounts if a.is_active]
        if len(active) < 2:
            st.info("Add at least two active accounts to transfer money between them.")
        else:
            balances = {str(a.id): a.current_balance for a in accounts}
            with st.form("transfer_form"):
                col1, col2 = st.columns(2)
                source = col1.selectbox(
                    "From",
                    options=active,
                    format_func=lambda i: f"{names[i]} ({money(balances[i], config)})",
                )
                with col1:
                    field_error("from_account_id")
                target = col2.selectbox(
                    "To",
                    options=active,
                    index=1,
                    format_func=lambda i: f"{names[i]} ({money(balances[i], config)})",
                )
                with col2:
                    field_error("to_account_id")
                amount = col1.text_input("Amount", placeholder="0.00")
                with col1:
                    field_error("amount")
                transfer_date = col2.date_input("Date", value=date.today())
                description = st.text_input("Description")
                submitted = st.form_submit_button("🔁 Transfer", type="primary")

            if submitted:
                outcome = run_async(components.record_flow.transfer({
                    "from_account_id": source,
                    "to_account_id": target,
                    "amount": amount,
                    "date": transfer_date,
                    "description": description,
                }))
                if handle_outcome(Collections.TRANSFERS, outcome, "Transfer completed"):
                    refresh(components)
                st.rerun()

    with tab_history:
        transfers = sorted(state.transfers, key=lambda t: t.date, reverse=True)
        if not transfers:
            st.info("No transfers yet.")
        else:
            st.table([
                {
                    "Date": show_date(t.date, config),
                    "From": names.get(t.from_account_id, "Deleted account"),
                    "To": names.get(t.to_account_id, "Deleted account"),
                    "Amount": money(t.amount, config),
                    "Description": t.description,
                }
                for t in transfers
            ])


# =============================================================================
# Products & services
# =============================================================================

def render_catalog_page(components: AppComponents, config) -> None:
    st.title("📦 Products & Services")
    state = get_state()
    tab_products, tab_services = st.tabs(["Products", "Services"])

    with tab_products:
        edit_id, prefill = editing(Collections.PRODUCTS, state.products)
        edit_banner(Collections.PRODUCTS, edit_id, "product")
        with st.form(f"product_form_{edit_id or 'new'}"):
            name = st.text_input("Name", value=prefill.get("name", ""))
            field_error("name")
            price = st.text_input("Price", value=prefill.get("price", ""), placeholder="0.00")
            field_error("price")
            description = st.text_area("Description", value=prefill.get("description", ""))
            category = st.text_input("Category", value=prefill.get("category", ""))
            submitted = st.form_submit_button("💾 Save product", type="primary")
        if submitted:
            outcome = run_async(components.record_flow.save_product({
                "name": name,
                "type": prefill.get("type") or ProductType.PRODUCT,
                "price": price,
                "description": description,
                "category": category,
            }, existing_id=edit_id))
            save_and_close(Collections.PRODUCTS, outcome, "Product saved")

        for product in state.products:
            col1, col2, col3, col4 = st.columns([4, 2, 1, 1])
            with col1:
                record_label(product.name, product.id)
                st.caption(product.description)
            col2.write(money(product.price, config))
            row_actions(Collections.PRODUCTS, product.id, col3, col4)
            confirm_delete(components, Collections.PRODUCTS, product.id, product.name)

    with tab_services:
        edit_id, prefill = editing(Collections.SERVICES, state.services)
        edit_banner(Collections.SERVICES, edit_id, "service")
        with st.form(f"service_form_{edit_id or 'new'}"):
            name = st.text_input("Name", value=prefill.get("name", ""))
            field_error("name")
            rate = st.text_input("Hourly rate", value=prefill.get("hourly_rate", ""), placeholder="0.00")
            field_error("hourly_rate")
            description = st.text_area("Description", value=prefill.get("description", ""))
            category = st.text_input("Category", value=prefill.get("category", ""))
            submitted = st.form_submit_button("💾 Save service", type="primary")
        if submitted:
            outcome = run_async(components.record_flow.save_service({
                "name": name,
                "hourly_rate": rate,
                "description": description,
                "category": category,
            }, existing_id=edit_id))
            save_and_close(Collections.SERVICES, outcome, "Service saved")

        for service in state.services:
            col1, col2, col3, col4 = st.columns([4, 2, 1, 1])
            with col1:
                record_label(service.name, service.id)
                st.caption(service.description)
            col2.write(f"{money(service.hourly_rate, config)}/hour")
            row_actions(Collections.SERVICES, service.id, col3, col4)
            confirm_delete(components, Collections.SERVICES, service.id, service.name)


# =============================================================================
# Invoices and bills
# =============================================================================

def render_documents_page(components: AppComponents, config, collection: str) -> None:
    is_invoice = collection == Collections.INVOICES
    party = "customer" if is_invoice else "vendor"
    st.title("🧾 Invoices" if is_invoice else "📥 Bills")
    state = get_state()
    documents = state.records(collection)
    edit_id, prefill = editing(collection, documents)
    edit_banner(collection, edit_id, "invoice" if is_invoice else "bill")
    form_key = f"{collection}_{edit_id or 'new'}"

    prefilled_items = prefill.get("items") or []
    item_count = st.number_input(
        "Number of items", min_value=1, max_value=20, value=max(len(prefilled_items), 1), key=f"{form_key}_items"
    )

    with st.form(f"{form_key}_form"):
        name = st.text_input(f"{party.title()} name", value=prefill.get(f"{party}_name", ""))
        field_error(f"{party}_name")
        email = st.text_input(f"{party.title()} email", value=prefill.get(f"{party}_email", ""))
        field_error(f"{party}_email")
        col1, col2 = st.columns(2)
        issue_date = col1.date_input("Issue date", value=parse_date(prefill.get("issue_date")) or date.today())
        due_date = col2.date_input(
            "Due date", value=parse_date(prefill.get("due_date")) or date.today() + timedelta(days=30)
        )
        field_error("due_date")

        items = []
        for i in range(int(item_count)):
            known = prefilled_items[i] if i < len(prefilled_items) else {}
            c1, c2, c3 = st.columns([4, 1, 2])
            description = c1.text_input("Description", value=known.get("description", ""), key=f"{form_key}_desc_{i}")
            quantity = c2.number_input(
                "Qty", min_value=0.0, value=float(known.get("quantity") or 1), key=f"{form_key}_qty_{i}"
            )
            unit_price = c3.text_input("Unit price", value=known.get("unit_price", ""), key=f"{form_key}_price_{i}")
            for field in ("description", "quantity", "unit_price"):
                field_error(f"items.{i}.{field}")
            items.append({
                "description": description,
                "quantity": Decimal(str(quantity)),
                "unit_price": unit_price,
                "category": known.get("category", ""),
            })
        field_error("items")
        notes = st.text_area("Notes", value=prefill.get("notes", ""))
        submitted = st.form_submit_button("💾 Save", type="primary")

    if submitted:
        form = {
            **prefill,
            f"{party}_name": name,
            f"{party}_email": email,
            "issue_date": issue_date,
            "due_date": due_date,
            "items": items,
            "notes": notes,
            "status": prefill.get("status") or DocumentStatus.PENDING,
        }
        flow = components.record_flow
        save = flow.save_invoice if is_invoice else flow.save_bill
        outcome = run_async(save(form, existing_id=edit_id))
        save_and_close(collection, outcome, f"{'Invoice' if is_invoice else 'Bill'} saved")

    st.markdown("---")
    if not documents:
        st.info("Nothing here yet.")
    for doc in documents:
        with st.expander(f"{doc.number}: {doc.counterparty_name} ({money(doc.total_amount, config)})"):
            st.write(f"Status: {doc.status.value.title()}")
            st.write(f"Issued {show_date(doc.issue_date, config)}, due {show_date(doc.due_date, config)}")
            st.write(
                f"Subtotal {money(doc.subtotal, config)} · Tax {money(doc.tax_amount, config)} · "
                f"Total {money(doc.total_amount, config)}"
            )
            if doc.status != DocumentStatus.PAID and st.button("Mark as paid", key=f"paid_{doc.id}"):
                outcome = run_async(components.record_flow.mark_paid(collection, doc.id))
                handle_outcome(collection, outcome, "Marked as paid")
                st.rerun()
            col1, col2 = st.columns(2)
            if col1.button("✏️ Edit", key=f"edit_{doc.id}"):
                st.session_state.editing = (collection, str(doc.id))
                st.rerun()
            if col2.button("🗑️ Delete", key=f"delete_{doc.id}"):
                st.session_state.confirm_delete = f"{collection}:{doc.id}"
                st.rerun()
            confirm_delete(components, collection, doc.id, doc.number)


# =============================================================================
# Clients & files (legal practice)
# =============================================================================

def render_legal_page(components: AppComponents, config) -> None:
    st.title("⚖️ Clients & Files")
    state = get_state()
    client_names = {str(c.id): c.name for c in state.clients}
    file_names = {str(f.id): f.file_name for f in state.client_files}

    tab_clients, tab_files, tab_charges, tab_report = st.tabs(
        ["Clients", "Files", "Expenses & fees", "Report"]
    )

    with tab_clients:
        edit_id, prefill = editing(Collections.CLIENTS, state.clients)
        edit_banner(Collections.CLIENTS, edit_id, "client")
        with st.form(f"client_form_{edit_id or 'new'}"):
            col1, col2 = st.columns(2)
            name = col1.text_input("Client name", value=prefill.get("name", ""))
            with col1:
                field_error("name")
            email = col2.text_input("Email", value=prefill.get("email", ""))
            with col2:
                field_error("email")
            phone = col1.text_input("Phone", value=prefill.get("phone", ""))
            address = col2.text_input("Address", value=prefill.get("address", ""))
            submitted = st.form_submit_button("💾 Save client", type="primary")
        if submitted:
            outcome = run_async(components.record_flow.save_client({
                "name": name,
                "email": email,
                "phone": phone,
                "address": address,
            }, existing_id=edit_id))
            save_and_close(Collections.CLIENTS, outcome, "Client saved")

        st.markdown("---")
        if not state.clients:
            st.info("No clients yet.")
        for client in state.clients:
            col1, col2, col3, col4 = st.columns([4, 3, 1, 1])
            with col1:
                record_label(client.name, client.id)
            col2.write(client.email or "")
            row_actions(Collections.CLIENTS, client.id, col3, col4)
            confirm_delete(
                components, Collections.CLIENTS, client.id, f"{client.name} and all of their files"
            )

    with tab_files:
        if not state.clients:
            st.info("Add a client before opening a file.")
        else:
            render_client_file_form(components, state, client_names)

        st.markdown("---")
        for client_file in sorted(state.client_files, key=lambda f: f.date_opened, reverse=True):
            col1, col2, col3, col4, col5 = st.columns([3, 3, 2, 1, 1])
            with col1:
                record_label(client_file.file_name, client_file.id)
            col2.write(client_names.get(client_file.client_id, "Unknown Client"))
            col3.write(client_file.status.value.title())
            row_actions(Collections.CLIENT_FILES, client_file.id, col4, col5)
            confirm_delete(
                components, Collections.CLIENT_FILES, client_file.id,
                f"{client_file.file_name} with its expenses and fees",
            )

    with tab_charges:
        if not state.client_files:
            st.info("Open a file before recording expenses or fees.")
        else:
            render_file_charges(components, config, state, file_names)

    with tab_report:
        render_legal_report(components, config)


def render_client_file_form(components: AppComponents, state: AppState, client_names: dict[str, str]) -> None:
    edit_id, prefill = editing(Collections.CLIENT_FILES, state.client_files)
    edit_banner(Collections.CLIENT_FILES, edit_id, "file")
    client_ids = list(client_names)
    statuses = list(FileStatus)

    with st.form(f"client_file_form_{edit_id or 'new'}"):
        col1, col2 = st.columns(2)
        client_id = col1.selectbox(
            "Client",
            options=client_ids,
            index=option_index(client_ids, prefill.get("client_id")),
            format_func=lambda i: client_names[i],
        )
        file_name = col2.text_input("File name", value=prefill.get("file_name", ""))
        with col2:
            field_error("file_name")
        date_opened = col1.date_input("Date opened", value=parse_date(prefill.get("date_opened")) or date.today())
        status = col2.selectbox(
            "Status",
            options=statuses,
            index=option_index(statuses, FileStatus(prefill.get("status") or "active")),
            format_func=lambda s: s.value.title(),
        )
        fees = col1.text_input("Agreed fees", value=prefill.get("fees_to_be_paid", ""), placeholder="0.00")
        with col1:
            field_error("fees_to_be_paid")
        deposit = col2.text_input("Deposit paid", value=prefill.get("deposit_paid", ""), placeholder="0.00")
        with col2:
            field_error("deposit_paid")
        payments = col1.text_input(
            "Payments received", value=prefill.get("payments_received", ""), placeholder="0.00"
        )
        with col1:
            field_error("payments_received")
        submitted = st.form_submit_button("💾 Save file", type="primary")

    if submitted:
        outcome = run_async(components.record_flow.save_client_file({
            "client_id": client_id,
            "file_name": file_name,
            "date_opened": date_opened,
            "status": status,
            "fees_to_be_paid": fees,
            "deposit_paid": deposit,
            "payments_received": payments,
        }, existing_id=edit_id))
        save_and_close(Collections.CLIENT_FILES, outcome, "File saved")


def render_file_charges(components: AppComponents, config, state: AppState, file_names: dict[str, str]) -> None:
    file_ids = list(file_names)
    file_id = st.selectbox("File", options=file_ids, format_func=lambda i: file_names[i])
    col_expenses, col_fees = st.columns(2)

    with col_expenses:
        st.subheader("Expenses")
        expenses = [e for e in state.file_expenses if e.file_id == file_id]
        edit_id, prefill = editing(Collections.FILE_EXPENSES, expenses)
        edit_banner(Collections.FILE_EXPENSES, edit_id, "expense")
        with st.form(f"file_expense_form_{edit_id or 'new'}"):
            description = st.text_input("Description", value=prefill.get("description", ""))
            amount = st.text_input("Amount", value=prefill.get("amount", ""), placeholder="0.00")
            expense_date = st.date_input("Date", value=parse_date(prefill.get("date")) or date.today())
            vendor = st.text_input("Vendor", value=prefill.get("vendor", ""))
            reimbursable = st.checkbox("Reimbursable by the client", value=prefill.get("is_reimbursable", True))
            submitted = st.form_submit_button("💾 Save expense", type="primary")
        if submitted:
            outcome = run_async(components.record_flow.save_file_expense({
                "file_id": file_id,
                "description": description,
                "amount": amount,
                "date": expense_date,
                "vendor": vendor,
                "is_reimbursable": reimbursable,
            }, existing_id=edit_id))
            save_and_close(Collections.FILE_EXPENSES, outcome, "Expense saved")

        for expense in sorted(expenses, key=lambda e: e.date):
            col1, col2, col3, col4 = st.columns([4, 2, 1, 1])
            with col1:
                flag = "" if expense.is_reimbursable else " (not reimbursable)"
                record_label(f"{show_date(expense.date, config)} {expense.description}{flag}", expense.id)
            col2.write(money(expense.amount, config))
            row_actions(Collections.FILE_EXPENSES, expense.id, col3, col4)
            confirm_delete(components, Collections.FILE_EXPENSES, expense.id, expense.description)

    with col_fees:
        st.subheader("Extra fees")
        fees = [f for f in state.extra_fees if f.file_id == file_id]
        edit_id, prefill = editing(Collections.EXTRA_FEES, fees)
        edit_banner(Collections.EXTRA_FEES, edit_id, "fee")
        with st.form(f"extra_fee_form_{edit_id or 'new'}"):
            description = st.text_input("Description", value=prefill.get("description", ""))
            amount = st.text_input("Amount", value=prefill.get("amount", ""), placeholder="0.00")
            fee_date = st.date_input("Date", value=parse_date(prefill.get("date")) or date.today())
            submitted = st.form_submit_button("💾 Save fee", type="primary")
        if submitted:
            outcome = run_async(components.record_flow.save_extra_fee({
                "file_id": file_id,
                "description": description,
                "amount": amount,
                "date": fee_date,
            }, existing_id=edit_id))
            save_and_close(Collections.EXTRA_FEES, outcome, "Fee saved")

        for fee in sorted(fees, key=lambda f: f.date):
            col1, col2, col3, col4 = st.columns([4, 2, 1, 1])
            with col1:
                record_label(f"{show_date(fee.date, config)} {fee.description}", fee.id)
            col2.write(money(fee.amount, config))
            row_actions(Collections.EXTRA_FEES, fee.id, col3, col4)
            confirm_delete(components, Collections.EXTRA_FEES, fee.id, fee.description)


def render_legal_report(components: AppComponents, config) -> None:
    today = date.today()
    col1, col2 = st.columns(2)
    start = col1.date_input("From", value=date(today.year, 1, 1), key="legal_from")
    end = col2.date_input("To", value=today, key="legal_to")

    report = run_async(components.report_flow.legal_report(start, end))

    c1, c2, c3 = st.columns(3)
    c1.metric("Outstanding", money(report.total_outstanding, config))
    c2.metric("Funds held", money(report.total_funds_held, config))
    c3.metric("Active files", report.active_files)

    st.subheader("By client")
    for summary in report.clients:
        with st.expander(f"{summary.client_name}: {money(summary.outstanding_balance, config)} outstanding"):
            st.write(
                f"Charged {money(summary.total_fees_charged, config)} · Paid {money(summary.total_paid, config)} · "
                f"Expenses {money(summary.total_expenses, config)} · Funds held {money(summary.funds_held, config)}"
            )
            st.write(f"Last activity: {show_date(summary.last_activity, config) or 'None'}")
            filename, content = run_async(
                components.report_flow.export_legal("client", summary.client_id, start, end)
            )
            st.download_button(
                "⬇️ Export client summary", data=content, file_name=filename,
                mime="text/csv", key=f"download_client_{summary.client_id}",
            )

    st.subheader("By file")
    for summary in report.files:
        with st.expander(f"{summary.file_name} ({summary.client_name})"):
            st.table([
                {"Figure": "Total fees charged", "Value": money(summary.total_fees_charged, config)},
                {"Figure": "Total paid", "Value": money(summary.total_paid, config)},
                {"Figure": "Balance remaining", "Value": money(summary.balance_remaining, config)},
                {"Figure": "Expenses", "Value": money(summary.total_expenses, config)},
                {"Figure": "Net summary", "Value": money(summary.net_summary, config)},
            ])
            if summary.entries:
                st.table([
                    {
                        "Date": show_date(e.date, config),
                        "Type": e.kind.title(),
                        "Description": e.description,
                        "Amount": money(e.amount, config),
                    }
                    for e in summary.entries
                ])
            filename, content = run_async(
                components.report_flow.export_legal("file", summary.file_id, start, end)
            )
            st.download_button(
                "⬇️ Export file summary", data=content, file_name=filename,
                mime="text/csv", key=f"download_file_{summary.file_id}",
            )


# =============================================================================
# Reports
# =============================================================================

def render_reports_page(components: AppComponents, config) -> None:
    st.title("📊 Reports")

    today = date.today()
    col1, col2 = st.columns(2)
    start = col1.date_input("From", value=today.replace(day=1))
    end = col2.date_input("To", value=today)

    report = run_async(components.report_flow.advanced_report(start, end))
    overview = run_async(components.report_flow.financial_overview(start, end, today))

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total sales", money(report.total_sales, config))
    c2.metric("Total expenses", money(report.total_expenses, config))
    c3.metric("Net profit", money(report.net_profit, config))
    c4.metric("Profit margin", f"{report.profit_margin:.1f}%")

    tab_sales, tab_expenses, tab_compare, tab_overview = st.tabs(
        ["Sales", "Expenses", "Comparison", "Overview"]
    )

    def groups_table(groups, label):
        return [
            {
                label: g.key,
                "Total": money(g.total, config),
                "Count": g.count,
                "Average": money(g.average, config),
                "Share": f"{g.percentage:.1f}%",
            }
            for g in groups
        ]

    with tab_sales:
        st.subheader("Sales by customer")
        st.table(groups_table(report.sales_analysis.by_customer, "Customer"))
        st.subheader("Sales by product/service")
        st.table(groups_table(report.sales_analysis.by_product, "Product/Service"))
        download_button(components, ExportView.SALES, start, end)

    with tab_expenses:
        st.subheader("Expenses by vendor")
        st.table(groups_table(report.expense_analysis.by_vendor, "Vendor"))
        st.subheader("Expenses by category")
        st.table(groups_table(report.expense_analysis.by_category, "Category"))
        st.subheader("Monthly trend")
        st.bar_chart({m.label: float(m.total) for m in report.expense_analysis.monthly_trend})
        download_button(components, ExportView.EXPENSES, start, end)

    with tab_compare:
        st.table([
            {"Figure": "Total Sales", "Value": money(report.total_sales, config)},
            {"Figure": "Total Expenses", "Value": money(report.total_expenses, config)},
            {"Figure": "Net Profit", "Value": money(report.net_profit, config)},
            {"Figure": "Profit Margin", "Value": f"{report.profit_margin:.1f}%"},
        ])
        download_button(components, ExportView.COMPARISON, start, end)

    with tab_overview:
        st.write(f"{overview.transaction_count} transaction(s) in range")
        st.subheader("Top categories")
        for item in overview.top_categories:
            st.write(f"{item.category} ({item.type.value}): {money(item.amount, config)}")
        st.subheader("Six-month trend")
        st.line_chart({
            "Revenue": {t.label: float(t.revenue) for t in overview.monthly_trends},
            "Expenses": {t.label: float(t.expenses) for t in overview.monthly_trends},
            "Profit": {t.label: float(t.profit) for t in overview.monthly_trends},
        })
        download_button(components, ExportView.TRANSACTIONS, start, end)


def download_button(components: AppComponents, view: ExportView, start: date, end: date) -> None:
    filename, content = run_async(components.report_flow.export(view, start, end))
    st.download_button(
        f"⬇️ Export {EXPORT_FILENAMES[view]}",
        data=content,
        file_name=filename,
        mime="text/csv",
        key=f"download_{view.value}",
    )


# =============================================================================
# Settings
# =============================================================================

def render_settings_page(components: AppComponents, config) -> None:
    st.title("⚙️ Settings")

    st.markdown("### Business profile")
    with st.form("business_form"):
        name = st.text_input("Business name", value=config.name)
        field_error("name")
        business_type = st.radio(
            "Business type",
            options=list(BusinessType),
            index=list(BusinessType).index(config.type),
            format_func=lambda t: "Law firm" if t == BusinessType.LEGAL else "General business",
            horizontal=True,
        )
        currencies = list(CURRENCIES)
        currency = st.selectbox(
            "Currency",
            options=currencies,
            index=currencies.index(config.currency) if config.currency in currencies else 0,
        )
        date_format = st.selectbox(
            "Date format",
            options=list(DateFormat),
            index=list(DateFormat).index(config.locale.date_format),
            format_func=lambda f: f.value,
        )
        submitted = st.form_submit_button("💾 Save profile", type="primary")

    if submitted:
        outcome = run_async(components.record_flow.save_business_config({
            "name": name,
            "type": business_type,
            "currency": currency,
            "locale": config.locale.locale,
            "date_format": date_format,
        }))
        if not outcome.validation.is_valid:
            dispatch(ValidationFailed(errors=outcome.validation.errors_by_field()))
        elif not outcome.persisted:
            dispatch(NetworkError(message=f"Could not save profile: {outcome.error}"))
        st.rerun()

    st.markdown("---")
    st.markdown("### Encryption")
    session = components.session_flow
    if session.signed_in:
        st.success(f"🔒 Signed in as {session.email}. Sensitive fields are encrypted.")
        if st.button("Sign out"):
            session.sign_out()
            st.rerun()
    else:
        st.info("Sign in to encrypt descriptions, names and notes before they are stored.")
        render_sign_in_form(components)

    st.markdown("---")
    st.markdown("### Cloud sync")
    sync = components.sync_flow
    if not sync.enabled:
        st.info("Cloud sync is disabled. Set BOOKKEEPER_SYNC_ENABLED=true to enable it.")
    else:
        pending = run_async(sync.queue_size())
        st.write(f"{pending} change(s) waiting to sync")
        if st.button("🔄 Sync now"):
            dispatch(run_async(sync.sync_now()))
            st.rerun()
        last = get_state().last_synced_at
        if last:
            st.caption(f"Last synced {last:%Y-%m-%d %H:%M} UTC")

    if sync.has_remote:
        st.markdown("#### Backup")
        st.caption(
            "Restoring pulls your backed-up records onto this device. Sign in with the same "
            "password first so encrypted records can be read. Newer local changes are kept."
        )
        col1, col2 = st.columns(2)
        if col1.button("🔎 Check backup"):
            info = run_async(sync.backup_info())
            if info.error:
                st.error(f"Could not read the backup: {info.error}")
            else:
                st.write(f"{info.total} record(s) in the backup")
                st.table([{"Collection": name, "Records": count} for name, count in info.counts.items() if count])
        if col2.button("⬇️ Restore from backup"):
            restore_from_backup(components)

    st.markdown("---")
    st.markdown("### Configuration status")
    status = validate_all_settings()
    sections = [
        ("Local storage", "storage"),
        ("Encryption", "encryption"),
        ("Sync", "sync"),
        ("Google Sheets (cloud backup)", "google_sheets"),
        ("Application", "app"),
    ]
    for label, key in sections:
        if status.get(key, False):
            st.success(f"✅ {label} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {label} - {error}")

    st.markdown(
        "To configure the application, create a `.env` file. "
        "See `.env.example` for the available variables."
    )


if __name__ == "__main__":
    main()
