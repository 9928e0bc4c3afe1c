"""
Streamlit Frontend for ClientVerse

The screen a financial advisor works in all day: a live list of their
clients, a form to add or edit one, and two AI helpers.

DESIGN PRINCIPLES:
1. The client list shows only what the live subscription delivered
2. Nothing is saved unless the advisor presses Save and the form validates
3. Field errors are shown next to the input that caused them
4. AI suggestions fill the form; the advisor still has to save
5. Failures show a short message and leave the form as it was
"""

import asyncio
import html
from typing import Any, Optional
from uuid import uuid4

import streamlit as st

from clientverse.activity import configure_logging, create_correlation_id
from clientverse.agents import AgentError
from clientverse.config import get_settings, validate_all_settings
from clientverse.models.client import AddressType, Client
from clientverse.orchestrator import (
    ClientManagementFlow,
    ClientWatchRegistry,
    create_app_components,
)
from clientverse.services.storage import InMemoryClientRepository, NotFoundError, StorageError


# Page configuration
st.set_page_config(
    page_title="ClientVerse",
    page_icon="👥",
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
    .client-card {
        padding: 16px;
        background-color: #f8f9fa;
        border-radius: 10px;
        border-left: 5px solid #004085;
        margin: 10px 0;
    }
    .client-card h4 {
        margin: 0 0 8px 0;
    }
    .client-card p {
        margin: 2px 0;
        color: #495057;
    }
    .field-error {
        color: #dc3545;
        font-size: 0.85em;
        margin-top: -10px;
    }
    .info-box {
        padding: 20px;
        background-color: #cce5ff;
        border-radius: 10px;
        border-left: 5px solid #004085;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


PAGES = ["👥 Clients", "📝 Client Form", "⚙️ Settings"]

# (key, label) of the text fields every person has
IDENTIFICATION_FIELDS = [
    ("pan", "PAN"),
    ("aadhar", "Aadhaar"),
    ("aadharMobile", "Aadhaar Mobile"),
    ("passportNo", "Passport No."),
    ("passportExpiryDate", "Passport Expiry (YYYY-MM-DD)"),
]

POLICY_SECTIONS = [
    ("healthPolicies", "🏥 Health Policies"),
    ("carBikePolicies", "🚗 Car / Bike Policies"),
    ("lifePolicies", "🛡️ Life Policies"),
]

MUTUAL_FUND_FIELDS = [
    ("amc", "AMC"),
    ("folio", "Folio"),
    ("units", "Units"),
    ("nav", "NAV"),
    ("investmentAmount", "Amount"),
]


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
    """Get or create application components (cached, shared by all sessions)."""
    configure_logging(get_settings().app.log_level)
    flow, repository = create_app_components()
    return flow, repository, ClientWatchRegistry(flow)


# =============================================================================
# FORM STATE
# =============================================================================

def _entry(**fields) -> dict[str, Any]:
    """A list entry with a stable widget key."""
    return {"_uid": uuid4().hex, **fields}


def blank_person() -> dict[str, Any]:
    person = {key: "" for key, _ in IDENTIFICATION_FIELDS}
    for key in (
        "mobiles", "addresses", "healthPolicies", "carBikePolicies",
        "lifePolicies", "mutualFundInvestments", "customFields",
    ):
        person[key] = []
    return person


def blank_client() -> dict[str, Any]:
    client = blank_person()
    client.update(
        clientName="",
        referenceName="",
        incomeTaxPassword="",
        remarks="",
        familyMembers=[],
    )
    return client


def with_uids(data: Any) -> Any:
    """Give every dict inside a list a _uid so widgets keep their state."""
    if isinstance(data, dict):
        return {key: with_uids(value) for key, value in data.items()}
    if isinstance(data, list):
        return [
            {"_uid": uuid4().hex, **with_uids(item)} if isinstance(item, dict) else item
            for item in data
        ]
    return data


def load_form(data: dict[str, Any], client_id: Optional[str] = None) -> None:
    """Replace the form contents and reset every widget."""
    st.session_state.form_data = with_uids(data)
    st.session_state.editing_id = client_id
    st.session_state.field_errors = {}
    st.session_state.form_version = st.session_state.get("form_version", 0) + 1


def init_state() -> None:
    defaults = {
        "page": PAGES[0],
        "next_page": None,
        "confirm_delete": None,
        "recommendations": {},
        "form_message": None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value
    if "form_data" not in st.session_state:
        load_form(blank_client())

    # The navigation radio owns "page", so switches are applied before it renders
    if st.session_state.next_page:
        st.session_state.page = st.session_state.next_page
        st.session_state.next_page = None


def go_to(page: str) -> None:
    st.session_state.next_page = page
    st.rerun()


def wkey(*parts) -> str:
    """Widget key, scoped to the current form version."""
    return "_".join(str(p) for p in (st.session_state.form_version, *parts))


def field_error_html(message: str) -> str:
    return f'<p class="field-error">{html.escape(message)}</p>'


def show_error(path: str) -> None:
    message = st.session_state.field_errors.get(path)
    if message:
        st.markdown(field_error_html(message), unsafe_allow_html=True)


# =============================================================================
# LIVE CLIENT LIST
# =============================================================================

def ensure_subscription(registry: ClientWatchRegistry, user_id: str):
    """The user's live subscription, shared with their other sessions."""
    try:
        return run_async(registry.open(user_id))
    except StorageError:
        st.error("Could not load your clients. Please check the connection and try again.")
        return None


def main():
    """Main application entry point."""
    try:
        flow, repository, registry = get_components()
    except StorageError:
        st.error(
            "Client storage is not configured, so nothing can be saved. "
            "Set the FIRESTORE_* variables, or set CLIENTVERSE_STORAGE_BACKEND=memory "
            "to try the app without persistence."
        )
        render_settings_page()
        return
    init_state()

    # Sidebar navigation
    st.sidebar.title("👥 ClientVerse")
    st.sidebar.markdown("---")

    user_id = st.sidebar.text_input(
        "Advisor ID",
        key="user_id",
        help="Your sign-in identifier. Clients are kept separately per advisor.",
    ).strip()

    page = st.sidebar.radio("Navigate to:", PAGES, key="page")

    if isinstance(repository, InMemoryClientRepository):
        st.sidebar.warning(
            "In-memory storage: clients are lost when the app restarts."
        )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How to use:**
        1. Enter your advisor ID
        2. Add a client with the form
        3. Open a client card to edit, delete or ask the AI assistant
        """
    )

    if page == "⚙️ Settings":
        render_settings_page()
        return

    if not user_id:
        st.markdown("""
        <div class="info-box">
            <h4>👋 Welcome</h4>
            <p>Enter your advisor ID in the sidebar to see your clients.</p>
        </div>
        """, unsafe_allow_html=True)
        return

    subscription = ensure_subscription(registry, user_id)

    if page == "👥 Clients":
        render_clients_page(flow, registry, user_id, subscription)
    elif page == "📝 Client Form":
        render_form_page(flow, user_id)


def render_clients_page(
    flow: ClientManagementFlow,
    registry: ClientWatchRegistry,
    user_id: str,
    subscription,
):
    """Render the dashboard of client cards."""
    st.title("👥 Your Clients")

    col1, col2 = st.columns([3, 1])
    with col1:
        term = st.text_input(
            "Search",
            placeholder="Search by client name",
            label_visibility="collapsed",
        )
    with col2:
        if st.button("➕ Add Client", type="primary"):
            load_form(blank_client())
            go_to("📝 Client Form")

    if subscription is None:
        return

    render_client_list(flow, registry, user_id, term)


@st.fragment(run_every="3s")
def render_client_list(
    flow: ClientManagementFlow,
    registry: ClientWatchRegistry,
    user_id: str,
    term: str,
):
    """Redraws from the latest snapshot so changes from other sessions show up."""
    # A failed subscription is dropped here and reopened on the next full rerun
    subscription = registry.current(user_id)
    if subscription is None:
        st.error("Lost the connection to your client list. Reload the page to reconnect.")
        return

    clients = subscription.latest
    if clients is None:
        st.info("Loading your clients...")
        return

    matches = flow.search_clients(clients, term)
    st.caption(f"{len(matches)} of {len(clients)} clients")

    if not clients:
        st.info("📋 No clients yet. Use 'Add Client' to create your first one.")
        return

    for index in range(0, len(matches), 3):
        columns = st.columns(3)
        for column, client in zip(columns, matches[index:index + 3]):
            with column:
                render_client_card(flow, user_id, client)


def client_card_html(client: Client) -> str:
    """Card markup for one client. Stored values are escaped."""
    phone = client.mobiles[0].value if client.mobiles else "-"
    address = client.addresses[0].value if client.addresses else "-"

    return f"""
    <div class="client-card">
        <h4>{html.escape(client.client_name)}</h4>
        <p><strong>Reference:</strong> {html.escape(client.reference_name or "-")}</p>
        <p><strong>PAN:</strong> {html.escape(client.pan or "-")}</p>
        <p><strong>Phone:</strong> {html.escape(phone)}</p>
        <p><strong>Address:</strong> {html.escape(address)}</p>
    </div>
    """


def render_client_card(flow: ClientManagementFlow, user_id: str, client: Client):
    """Render one client card with its actions."""
    st.markdown(client_card_html(client), unsafe_allow_html=True)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("✏️ Edit", key=f"edit_{client.id}"):
            load_form(client.to_record().to_document(), client_id=client.id)
            go_to("📝 Client Form")
    with col2:
        if st.button("🗑️ Delete", key=f"delete_{client.id}"):
            st.session_state.confirm_delete = client.id

    if st.session_state.confirm_delete == client.id:
        st.warning(f"Delete {client.client_name} and all their details? This cannot be undone.")
        yes, no = st.columns(2)
        with yes:
            if st.button("Yes, delete", key=f"confirm_{client.id}", type="primary"):
                try:
                    run_async(flow.delete_client(user_id, client.id))
                except StorageError:
                    st.error("Could not delete the client. Please try again.")
                else:
                    st.session_state.confirm_delete = None
                    st.toast(f"Deleted {client.client_name}")
                    st.rerun(scope="fragment")
        with no:
            if st.button("Cancel", key=f"cancel_{client.id}"):
                st.session_state.confirm_delete = None
                st.rerun(scope="fragment")

    with st.expander("🤖 AI Assistant"):
        if st.button("💡 Suggest products", key=f"recommend_{client.id}"):
            with st.spinner("Thinking about suitable products..."):
                try:
                    st.session_state.recommendations[client.id] = run_async(
                        flow.recommend_products(client, correlation_id=create_correlation_id())
                    )
                except AgentError:
                    st.error("The AI assistant is unavailable right now. Please try again.")

        recommendations = st.session_state.recommendations.get(client.id)
        if recommendations is not None:
            st.markdown("**Insurance**")
            for item in recommendations.insurance_recommendations or ["No suggestions"]:
                st.markdown(f"- {item}")
            st.markdown("**Investments**")
            for item in recommendations.investment_recommendations or ["No suggestions"]:
                st.markdown(f"- {item}")


# =============================================================================
# CLIENT FORM
# =============================================================================

def render_text_fields(data: dict, fields: list, prefix: str, key: str, columns: int = 2):
    """Text inputs for scalar fields; values are written back into data."""
    cols = st.columns(columns)
    for index, (field, label) in enumerate(fields):
        with cols[index % columns]:
            data[field] = st.text_input(
                label,
                value=data.get(field) or "",
                key=wkey(key, field),
            )
            show_error(f"{prefix}{field}")


def render_list_section(
    data: dict,
    field: str,
    title: str,
    prefix: str,
    key: str,
    columns: list,
    new_entry: dict,
    item_label: str,
):
    """Editable list of entries with add and remove buttons."""
    st.markdown(f"**{title}**")
    items = data.setdefault(field, [])
    removed = None
    for index, item in enumerate(items):
        uid = item.setdefault("_uid", uuid4().hex)
        cols = st.columns(len(columns) + 1)
        for col, (name, label) in zip(cols, columns):
            with col:
                if name == "type":
                    choices = [t.value for t in AddressType]
                    current = item.get("type") or AddressType.PERMANENT.value
                    item["type"] = st.selectbox(
                        label,
                        choices,
                        index=choices.index(current) if current in choices else 0,
                        key=wkey(key, field, uid, name),
                    )
                else:
                    item[name] = st.text_input(
                        label,
                        value=item.get(name) or "",
                        key=wkey(key, field, uid, name),
                    )
                show_error(f"{prefix}{field}[{index}].{name}")
        with cols[-1]:
            if st.button("✖", key=wkey(key, field, uid, "remove")):
                removed = index
    if removed is not None:
        items.pop(removed)
        st.rerun()
    if st.button(f"➕ Add {item_label}", key=wkey(key, field, "add")):
        items.append(_entry(**new_entry))
        st.rerun()


def render_person_sections(data: dict, prefix: str, key: str):
    """Identification fields and collections shared by clients and family members."""
    render_text_fields(data, IDENTIFICATION_FIELDS, prefix, key, columns=3)

    render_list_section(
        data, "mobiles", "📞 Mobiles", prefix, key,
        [("value", "Phone number")], {"value": ""}, "Mobile",
    )
    render_list_section(
        data, "addresses", "🏠 Addresses", prefix, key,
        [("type", "Type"), ("value", "Address")],
        {"type": AddressType.PERMANENT.value, "value": ""}, "Address",
    )
    for field, title in POLICY_SECTIONS:
        columns = [("policyNo", "Policy No."), ("companyName", "Company")]
        if field == "healthPolicies":
            columns.append(("healthInfo", "Health info"))
        render_list_section(
            data, field, title, prefix, key, columns,
            {"policyNo": "", "companyName": ""}, "Policy",
        )
    render_list_section(
        data, "mutualFundInvestments", "📈 Mutual Funds", prefix, key,
        MUTUAL_FUND_FIELDS, {name: "" for name, _ in MUTUAL_FUND_FIELDS}, "Fund",
    )
    render_list_section(
        data, "customFields", "🏷️ Custom Fields", prefix, key,
        [("name", "Name"), ("value", "Value")], {"name": "", "value": ""}, "Field",
    )


def render_form_page(flow: ClientManagementFlow, user_id: str):
    """Render the add / edit client form."""
    data = st.session_state.form_data
    editing_id = st.session_state.editing_id

    st.title("✏️ Edit Client" if editing_id else "➕ Add Client")

    if st.session_state.form_message:
        st.error(st.session_state.form_message)
        st.session_state.form_message = None

    st.markdown("### Client Details")
    render_text_fields(data, [
        ("clientName", "Client Name *"),
        ("referenceName", "Reference Name"),
    ], "", "client")
    render_person_sections(data, "", "client")

    st.markdown("### Other")
    data["incomeTaxPassword"] = st.text_input(
        "Income Tax Password",
        value=data.get("incomeTaxPassword") or "",
        type="password",
        key=wkey("client", "incomeTaxPassword"),
    )
    data["remarks"] = st.text_area(
        "Remarks",
        value=data.get("remarks") or "",
        key=wkey("client", "remarks"),
    )

    st.markdown("### 👪 Family Members")
    members = data.setdefault("familyMembers", [])
    removed = None
    for index, member in enumerate(members):
        uid = member.setdefault("_uid", uuid4().hex)
        prefix = f"familyMembers[{index}]."
        label = member.get("name") or f"Family member {index + 1}"
        with st.expander(f"👤 {label}", expanded=not member.get("name")):
            render_text_fields(member, [
                ("name", "Name *"),
                ("relationship", "Relationship"),
            ], prefix, f"family_{uid}")
            render_person_sections(member, prefix, f"family_{uid}")
            member["healthInfo"] = st.text_area(
                "Health Info",
                value=member.get("healthInfo") or "",
                key=wkey("family", uid, "healthInfo"),
            )
            if st.button("🗑️ Remove family member", key=wkey("family", uid, "remove")):
                removed = index
    if removed is not None:
        members.pop(removed)
        st.rerun()
    if st.button("➕ Add Family Member"):
        members.append(_entry(**blank_person(), name="", relationship="", healthInfo=""))
        st.rerun()

    st.markdown("---")

    if editing_id:
        render_autofill_panel(flow, data, editing_id)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("💾 Save", type="primary"):
            save_form(flow, user_id, data, editing_id)
    with col2:
        if st.button("↩️ Cancel"):
            load_form(blank_client())
            go_to(PAGES[0])


def render_autofill_panel(flow: ClientManagementFlow, data: dict, client_id: str):
    """Let the AI propose values for blank fields of an existing client."""
    with st.expander("✨ AI Autofill"):
        st.markdown("Suggests values for blank fields. Review them before saving.")
        if st.button("✨ Autofill missing fields"):
            result = flow.validator.validate(data)
            if not result.is_valid:
                st.session_state.field_errors = result.field_errors()
                st.error("Fix the highlighted fields before using autofill.")
                return
            with st.spinner("Looking for missing details..."):
                try:
                    proposals = run_async(flow.autofill_client(
                        result.record,
                        client_id=client_id,
                        correlation_id=create_correlation_id(),
                    ))
                except (AgentError, ValueError):
                    st.error("The AI assistant could not fill the form. Please try again.")
                    return
            if not proposals:
                st.info("Nothing to fill in.")
                return
            load_form(flow.apply_autofill(data, proposals), client_id=client_id)
            st.toast(f"Filled: {', '.join(sorted(proposals))}")
            st.rerun()


def save_form(flow: ClientManagementFlow, user_id: str, data: dict, editing_id: Optional[str]):
    """Validate and save; on failure, keep the form and highlight fields."""
    try:
        outcome = run_async(flow.save_client(
            user_id,
            data,
            client_id=editing_id,
            correlation_id=create_correlation_id(),
        ))
    except NotFoundError:
        st.error("This client was deleted in the meantime.")
        return
    except StorageError:
        st.error("Could not save the client. Please try again.")
        return

    if not outcome.saved:
        # Rerun so the messages appear next to the inputs drawn above
        st.session_state.field_errors = outcome.validation.field_errors()
        st.session_state.form_message = flow.validator.get_user_friendly_summary(
            outcome.validation
        )
        st.rerun()

    name = outcome.validation.record.client_name
    st.toast(f"Saved {name}" + (" (please double-check the warnings)" if outcome.validation.warnings else ""))
    load_form(blank_client())
    go_to(PAGES[0])


# =============================================================================
# SETTINGS
# =============================================================================

def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Cloud Firestore (Storage)", "firestore"),
        ("Gemini (AI)", "gemini"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if status.get("app"):
        st.markdown(f"**Storage backend:** `{get_settings().app.storage_backend}`")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your credentials. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
