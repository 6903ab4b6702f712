"""
app.py
Streamlit admin panel for the academy's member roster and payments.
Run: streamlit run app.py
"""

from __future__ import annotations

import logging
from datetime import date

import pandas as pd
import streamlit as st

import auth
import config
import db
import ledger
import service
import utils
from errors import AcademyError, Unauthorized
from models import Level, Role, Status
from status import derive_status

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

st.set_page_config(page_title="Academy Admin", layout="wide")

STATUS_LABELS = {
    Status.ACTIVE: "🟢 Active",
    Status.WARNING: "🟡 Warning",
    Status.INACTIVE: "🔴 Inactive",
    Status.UNPAID: "⚪ Unpaid",
}

PAGES_BY_ROLE = {
    Role.ADMIN: ["Dashboard", "Members", "Payments", "Reports", "Settings"],
    Role.MEMBER_MANAGER: ["Members", "Payments", "Settings"],
}


@st.cache_resource
def get_limiter() -> auth.RateLimiter:
    # one limiter per server process, shared by all sessions
    return auth.RateLimiter(auth.InMemoryAttemptStore())


def init_once():
    # Initialize store + default admin if needed
    default_hash = auth.hash_password("admin123")
    db.init_store(default_hash)


def require_login():
    if "token" not in st.session_state:
        st.session_state.token = None


def logout():
    st.session_state.token = None
    st.session_state.pop("page", None)
    st.success("Logged out.")


def current_identity() -> auth.Identity | None:
    try:
        return auth.authorize(st.session_state.token)
    except Unauthorized:
        st.session_state.token = None
        return None


def run_action(action, success_message: str | None = None):
    """
    Run one store-backed operation.
    Returns its result (True for actions returning nothing), or None after
    showing a toast on failure; the page keeps what it had on screen.
    """
    try:
        result = action()
    except AcademyError as exc:
        logger.info("Action failed: %s", exc.message)
        st.toast(exc.message, icon="⚠️")
        st.error(exc.message)
        return None
    if success_message:
        st.success(success_message)
    return True if result is None else result


def client_id() -> str:
    headers = st.context.headers
    return headers.get("X-Forwarded-For") or headers.get("X-Real-Ip") or "local"


def login_screen():
    st.title("🔐 Academy Admin Login")

    col1, col2 = st.columns([1, 1])
    with col1:
        username = st.text_input("Username", value="admin")
        password = st.text_input("Password", type="password")
        if st.button("Login", type="primary"):
            token = run_action(lambda: auth.login(username.strip(), password, client_id(), get_limiter()))
            if token:
                st.session_state.token = token
                st.rerun()

    with col2:
        st.info(
            "First run creates a default admin:\n\n"
            "- username: **admin**\n"
            "- password: **admin123**\n\n"
            "You will be forced to change it on first login."
        )


def force_change_password_screen(identity: auth.Identity):
    st.title("⚠️ Change Password (Required)")

    st.warning("You must change the default password before using the app.")
    new1 = st.text_input("New password", type="password")
    new2 = st.text_input("Confirm new password", type="password")

    if st.button("Update password", type="primary"):
        if new1 != new2:
            st.error("Passwords do not match.")
            return
        if run_action(lambda: auth.change_password(identity.username, new1)):
            st.success("Password updated. You can continue.")
            st.rerun()


# ---------- Pages ----------

def dashboard_page():
    st.header("📊 Dashboard")

    members = run_action(service.list_members)
    if members is None:
        return
    today = date.today()
    summary = service.aggregate(members, today)

    c1, c2, c3, c4, c5 = st.columns(5)
    c1.metric("Total members", summary.total_members)
    c2.metric("Active", summary.counts_by_status[Status.ACTIVE])
    c3.metric("Warning (31-45 days)", summary.counts_by_status[Status.WARNING])
    c4.metric("Inactive", summary.counts_by_status[Status.INACTIVE])
    c5.metric("Unpaid", summary.counts_by_status[Status.UNPAID])
    st.metric("Total collected", f"₺{summary.total_paid:,.2f}")

    st.divider()

    st.subheader("Recent registrations")
    if summary.recent:
        st.dataframe(utils.members_frame(summary.recent, today), use_container_width=True, hide_index=True)
    else:
        st.caption("No members yet.")


def member_form(identity: auth.Identity, existing=None):
    if existing:
        st.subheader(f"✏️ Edit Member (ID: {existing.id})")
    else:
        st.subheader("➕ Add Member")

    key = f"member_{existing.id if existing else 'new'}"
    col1, col2, col3 = st.columns(3)
    with col1:
        first_name = st.text_input("First name", value=(existing.first_name if existing else ""), key=f"{key}_first")
        last_name = st.text_input("Last name", value=(existing.last_name if existing else ""), key=f"{key}_last")
        phone = st.text_input("Phone", value=(existing.phone if existing else ""), key=f"{key}_phone")

    with col2:
        levels = [lvl.value for lvl in Level]
        level = st.selectbox(
            "Level",
            options=levels,
            index=(levels.index(existing.level.value) if existing else 0),
            key=f"{key}_level",
        )
        registration_date = st.date_input(
            "Registration date",
            value=((existing.registration_date or date.today()) if existing else date.today()),
            key=f"{key}_reg",
        )

    with col3:
        notes = st.text_area("Notes", value=(existing.notes if existing else ""), key=f"{key}_notes")
        is_active = True
        if identity.role is Role.ADMIN:
            is_active = st.checkbox(
                "Active (uncheck to force inactive)",
                value=(existing.is_active if existing else True),
                key=f"{key}_active",
            )

    data = {
        "firstName": first_name,
        "lastName": last_name,
        "phone": phone,
        "level": level,
        "registrationDate": registration_date.isoformat(),
        "notes": notes,
    }
    if identity.role is Role.ADMIN:
        data["isActive"] = is_active

    errors = utils.validate_member_inputs(first_name, last_name, phone, level, registration_date.isoformat())
    for e in errors.values():
        st.caption(f"❗ {e}")

    if st.button("Save", type="primary", disabled=bool(errors), key=f"{key}_save"):
        if existing:
            saved = run_action(lambda: service.update_member(existing.id, data, identity.role), "Member updated.")
        else:
            saved = run_action(lambda: service.create_member(data, identity.role), "Member added.")
        if saved:
            st.session_state.edit_member_id = None
            st.rerun()


def members_page(identity: auth.Identity):
    st.header("👥 Members")

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (name/phone)")
        level_filter = st.selectbox("Level", ["all"] + [lvl.value for lvl in Level])
        status_filter = st.selectbox("Status", ["all"] + [s.value for s in Status])

    today = date.today()
    filters = service.MemberFilter(search_term=search, level=level_filter, status=status_filter)
    members = run_action(lambda: service.list_members(filters, today))
    if members is None:
        return

    df = utils.members_frame(members, today)
    st.dataframe(df, use_container_width=True, hide_index=True)
    if df.empty:
        if search or level_filter != "all" or status_filter != "all":
            st.caption("No members match these filters.")
        else:
            st.caption("No members yet.")

    st.divider()

    colA, colB = st.columns([1, 2])
    with colA:
        st.subheader("Select member")
        selected_id = st.selectbox("Member ID", options=["(none)"] + [str(m.id) for m in members])

    with colB:
        if selected_id != "(none)":
            member_id = int(selected_id)
            st.subheader("Member actions")
            c1, c2, c3 = st.columns(3)
            with c1:
                if st.button("Edit"):
                    st.session_state.edit_member_id = member_id
                    st.rerun()
            with c2:
                if st.button("View payments"):
                    st.session_state.payments_member_id = member_id
                    st.session_state.page = "Payments"
                    st.rerun()
            with c3:
                if identity.role is Role.ADMIN:
                    delete_confirm = st.checkbox("Confirm delete", value=False, key="del_confirm")
                    if st.button("Delete", type="secondary", disabled=not delete_confirm):
                        deleted = run_action(
                            lambda: service.delete_member(member_id, identity.role), "Member deleted."
                        )
                        if deleted:
                            st.rerun()

    st.divider()

    if st.session_state.get("edit_member_id"):
        existing = run_action(lambda: service.get_member(st.session_state.edit_member_id))
        if existing:
            member_form(identity, existing=existing)
        else:
            st.session_state.edit_member_id = None
        if st.button("Cancel edit"):
            st.session_state.edit_member_id = None
            st.rerun()
    else:
        member_form(identity, existing=None)


def payments_page(identity: auth.Identity):
    st.header("💳 Payments")

    members = run_action(service.list_members)
    if members is None:
        return
    if not members:
        st.info("No members yet. Add a member first.")
        return

    members = sorted(members, key=lambda m: m.full_name.casefold())
    options = {f"{m.full_name} ({m.phone}) - ID {m.id}": m.id for m in members}
    label_list = list(options.keys())
    default_member_id = st.session_state.get("payments_member_id", members[0].id)
    default_index = next((i for i, label in enumerate(label_list) if options[label] == default_member_id), 0)
    chosen_label = st.selectbox("Member", label_list, index=default_index)
    member_id = options[chosen_label]
    st.session_state.payments_member_id = member_id
    member = next(m for m in members if m.id == member_id)

    today = date.today()
    last = ledger.most_recent(member.payments)
    c1, c2, c3 = st.columns(3)
    c1.metric("Status", STATUS_LABELS[derive_status(member, today)])
    c2.metric("Last payment", last.date.isoformat() if last else "None")
    c3.metric("Total paid", f"₺{ledger.total_paid(member.payments):,.2f}")

    st.subheader("Add payment")
    c1, c2, c3, c4 = st.columns([1, 1, 1, 2])
    with c1:
        amount = st.text_input("Amount", value="1000")
    with c2:
        pay_date = st.date_input("Date", value=today).isoformat()
    with c3:
        period = st.text_input("Period (YYYY-MM)", value=utils.current_period(today))
    with c4:
        note = st.text_input("Note", value="")

    if st.button("Record payment", type="primary"):
        payment = {"date": pay_date, "amount": amount.strip(), "period": period, "note": note}
        if run_action(lambda: service.add_payment(member_id, payment, identity.role), "Payment recorded."):
            st.rerun()

    st.divider()

    st.subheader("Payment history")
    history = ledger.sorted_history(member.payments)
    if history:
        st.dataframe(
            pd.DataFrame([p.to_record() for p in history]),
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.caption("No payments for this member yet.")


def reports_page():
    st.header("🧾 Reports")

    members = run_action(service.list_members)
    if members is None:
        return
    today = date.today()

    st.subheader("Export members to CSV")
    if members:
        st.download_button(
            "Download members.csv",
            data=utils.members_to_csv_bytes(members, today),
            file_name="members.csv",
            mime="text/csv",
        )
    else:
        st.caption("No members to export.")

    st.divider()

    st.subheader("Export payments to CSV")
    if any(m.payments for m in members):
        st.download_button(
            "Download payments.csv",
            data=utils.payments_to_csv_bytes(members),
            file_name="payments.csv",
            mime="text/csv",
        )
    else:
        st.caption("No payments to export.")

    st.divider()

    st.subheader("Revenue summary by period")
    st.dataframe(utils.revenue_summary_by_period(members), use_container_width=True, hide_index=True)


def settings_page(identity: auth.Identity):
    st.header("⚙️ Settings")

    st.subheader("Change password")
    p1 = st.text_input("New password", type="password")
    p2 = st.text_input("Confirm new password", type="password")
    if st.button("Update password", type="primary"):
        if p1 != p2:
            st.error("Passwords do not match.")
        else:
            run_action(lambda: auth.change_password(identity.username, p1), "Password updated.")

    if identity.role is not Role.ADMIN:
        return

    st.divider()

    st.subheader("Users")
    users = run_action(auth.list_users)
    if users:
        st.dataframe(pd.DataFrame(users), use_container_width=True, hide_index=True)
    c1, c2, c3 = st.columns(3)
    with c1:
        new_username = st.text_input("Username", key="new_user_name")
    with c2:
        new_password = st.text_input("Password", type="password", key="new_user_password")
    with c3:
        new_role = st.selectbox("Role", [r.value for r in Role], key="new_user_role")
    if st.button("Add user"):
        if run_action(lambda: auth.create_user(new_username, new_password, new_role), "User added."):
            st.rerun()

    st.divider()

    st.subheader("Sample data")
    st.caption("Insert 4 sample members (one per status) for testing (adds new members each run).")
    if st.button("Insert sample data"):
        if run_action(lambda: service.insert_sample_data(identity.role), "Sample data inserted."):
            st.rerun()


def main_app(identity: auth.Identity):
    st.sidebar.title("🥋 Academy Admin")
    st.sidebar.caption(f"Logged in as: {identity.username} ({identity.role.value})")

    pages = PAGES_BY_ROLE[identity.role]
    if st.session_state.get("page") not in pages:
        st.session_state.page = pages[0]
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    if st.session_state.page == "Dashboard":
        auth.require_role(identity, "dashboard")
        dashboard_page()
    elif st.session_state.page == "Members":
        auth.require_role(identity, "members")
        members_page(identity)
    elif st.session_state.page == "Payments":
        auth.require_role(identity, "payments")
        payments_page(identity)
    elif st.session_state.page == "Reports":
        auth.require_role(identity, "reports")
        reports_page()
    elif st.session_state.page == "Settings":
        settings_page(identity)


# --------- App entry ---------

def run():
    if run_action(init_once) is None:
        return
    require_login()

    identity = current_identity()
    if identity is None:
        login_screen()
        return

    # Force password change on first login after store creation
    if db.is_force_password_change():
        force_change_password_screen(identity)
        return

    main_app(identity)


if __name__ == "__main__":
    run()
