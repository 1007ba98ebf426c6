import asyncio
from typing import Any, Dict, List

import streamlit as st

from payout_console.config import configure_logging, settings
from payout_console.console import PayoutConsole
from payout_console.models.schemas import (
    DecisionOutcome,
    DecisionRecord,
    FinalDecision,
    HistoryFilters,
    HumanAction,
)
from payout_console.state.views import Region


def run(coro) -> Any:
    """Run one console coroutine to completion for the current event."""
    return asyncio.run(coro)


def get_console() -> PayoutConsole:
    if "console" not in st.session_state:
        st.session_state.console = PayoutConsole()
    return st.session_state.console


def _render_region(region: Region) -> None:
    if region.error:
        st.error(region.error)
    elif region.message:
        st.success(region.message)


def _format_regret(value: Any) -> str:
    if value is None:
        return "n/a"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def _record_row(record: DecisionRecord) -> Dict[str, Any]:
    return {
        "Created": record.created_at.strftime("%Y-%m-%d %H:%M"),
        "User": record.user_id,
        "Amount": f"{record.amount:,.2f} {record.currency}",
        "Decision": record.decision.value,
        "Risk": round(record.risk_score, 2),
        "Confidence": round(record.confidence_score, 2),
        "Status": record.review_state.value,
        "Human decision": record.human_final_decision.value if record.human_final_decision else "",
    }


def _render_bullets(title: str, items: List[str]) -> None:
    st.markdown(f"**{title}**")
    if not items:
        st.caption("None")
        return
    for item in items:
        st.markdown(f"- {item}")


def _render_review_actions(console: PayoutConsole, record: DecisionRecord) -> None:
    review = console.review
    locked = review.is_locked(record.id)
    actions = record.available_actions

    if not actions:
        st.caption(f"Final decision: {record.human_final_decision.value}")
        if record.human_note:
            st.caption(f"Note: {record.human_note}")
        return

    if HumanAction.RESOLVE in actions:
        if st.button("Why was this routed to review?", key=f"rationale_{record.id}"):
            run(review.fetch_rationale(record.id))
        rationale = review.state.rationales.get(record.id)
        if rationale:
            st.info(rationale)
        final = st.radio(
            "Final decision",
            options=[FinalDecision.APPROVE.value, FinalDecision.BLOCK.value],
            horizontal=True,
            key=f"final_{record.id}",
        )
        note = st.text_input("Note (optional)", key=f"resolve_note_{record.id}")
        if st.button("Resolve", key=f"resolve_{record.id}", type="primary", disabled=locked):
            run(review.resolve(record.id, final, note))
            st.rerun()
        return

    col1, col2 = st.columns([1, 3])
    with col1:
        if st.button("Accept", key=f"accept_{record.id}", type="primary", disabled=locked):
            run(review.accept(record.id))
            st.rerun()
    with col2:
        note = st.text_input("Why is this decision wrong?", key=f"conflict_note_{record.id}")
        if st.button("Conflict", key=f"conflict_{record.id}", disabled=locked):
            run(review.conflict(record.id, note))
            st.rerun()


def render_history_tab(console: PayoutConsole) -> None:
    review = console.review
    filters = review.state.filters

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        decision_options = ["all"] + [outcome.value for outcome in DecisionOutcome]
        selected = st.selectbox("Decision", decision_options)
    with col2:
        user_id = st.text_input("User ID", value=filters.user_id or "")
    with col3:
        days = st.number_input("Days", min_value=1, max_value=90, value=filters.days)
    with col4:
        limit = st.number_input("Limit", min_value=1, max_value=500, value=filters.limit)

    new_filters = HistoryFilters(
        limit=int(limit),
        days=int(days),
        decision=None if selected == "all" else DecisionOutcome(selected),
        user_id=user_id or None,
    )
    if st.button("Refresh", type="secondary") or review.state.last_refreshed is None or new_filters != filters:
        run(review.refresh(new_filters))

    state = review.state
    if state.last_refreshed:
        st.caption(f"Last refreshed {state.last_refreshed.strftime('%H:%M:%S')}")
    if state.list_region.error:
        st.error(state.list_region.error)
    _render_region(state.action_region)
    if state.rationale_region.error:
        st.warning(state.rationale_region.error)

    if not state.records:
        st.info("No payout decisions in this window.")
        return

    st.dataframe([_record_row(record) for record in state.records], width="stretch")

    for record in state.records:
        header = f"{record.user_id} · {record.amount:,.2f} {record.currency} · {record.decision.value} · {record.review_state.value}"
        with st.expander(header, expanded=False):
            st.caption(f"Decision {record.id} | Regret: {_format_regret(record.regret_level)}")
            left, right = st.columns(2)
            with left:
                _render_bullets("Triggered signals", record.triggered_signals)
                _render_bullets("Reasons", record.reasons)
            with right:
                _render_bullets("Counterfactuals", record.counterfactuals)
            st.divider()
            _render_review_actions(console, record)


def _render_suggested_weights(console: PayoutConsole) -> None:
    weights = console.weights
    proposal = weights.state.suggested_weights
    if not proposal:
        return
    with st.container(border=True):
        st.markdown("**Suggested weights from the approved decision**")
        for line in weights.describe_proposal(proposal):
            st.markdown(f"- {line}")
        col1, col2 = st.columns(2)
        with col1:
            if st.button("Apply suggested weights", type="primary", disabled=weights.is_saving):
                run(weights.apply_suggested_weights())
                st.rerun()
        with col2:
            if st.button("Dismiss suggested weights"):
                run(weights.dismiss_suggested_weights())
                st.rerun()


def render_weights_editor(console: PayoutConsole) -> None:
    weights = console.weights
    state = weights.state

    if state.region.error:
        st.error(state.region.error)
        return
    if state.resource is None:
        st.info("Signal weights not loaded.")
        return

    if state.resource.system_score is not None:
        st.metric("System score", f"{state.resource.system_score:.1f}")

    pending = state.resource.pending_suggestion
    if pending:
        with st.container(border=True):
            st.markdown("**The engine suggests new weights**")
            for line in weights.describe_proposal(pending):
                st.markdown(f"- {line}")
            col1, col2 = st.columns(2)
            with col1:
                if st.button("Apply suggestion", type="primary", disabled=weights.is_saving):
                    run(weights.apply_suggestion())
                    st.rerun()
            with col2:
                if st.button("Dismiss suggestion"):
                    weights.dismiss_suggestion()
                    st.rerun()

    for signal in weights.signal_names:
        current = weights.display_value(signal)
        # Keyed on the view revision so inputs reset after every fetch or commit
        value = st.number_input(
            signal,
            min_value=0.0,
            max_value=100.0,
            value=float(current),
            step=1.0,
            key=f"weight_{signal}_{state.revision}",
        )
        if value != current:
            weights.edit(signal, value)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Save weights", type="primary", disabled=not weights.has_pending_edit or weights.is_saving):
            run(weights.save_manual_weights())
            st.rerun()
    with col2:
        if st.button("Refresh weights"):
            run(weights.refresh())
            st.rerun()
    _render_region(state.save_region)


def render_conflicted_decisions(console: PayoutConsole) -> None:
    curation = console.curation
    state = curation.state

    if st.button("Refresh conflicted decisions"):
        run(curation.refresh())
        st.rerun()
    if state.list_region.error:
        st.error(state.list_region.error)
    _render_region(state.approve_region)

    if not state.rows:
        st.info("No conflicted decisions.")
        return

    for row in state.rows:
        label = row.payout_summary or row.decision_id or row.human_review_id
        header = f"{label} · system {row.system_decision.value} → human {row.human_decision.value}"
        with st.expander(header, expanded=False):
            if row.system_explanation:
                st.markdown("**System explanation**")
                st.write(row.system_explanation)
            if row.human_note:
                st.markdown(f"**Reviewer note**: {row.human_note}")
            st.caption(f"Risk score {row.risk_score:.2f}")
            _render_bullets("Triggered signals", row.triggered_signals)
            _render_bullets("Reasons", row.reasons)
            if row.approved_for_learning:
                st.success("Approved for learning")
            elif st.button(
                "Approve for learning",
                key=f"approve_{row.human_review_id}",
                disabled=curation.is_locked(row.human_review_id),
            ):
                run(curation.approve_for_learning(row.human_review_id))
                st.rerun()


def render_admin_tab(console: PayoutConsole) -> None:
    if "admin_loaded" not in st.session_state:
        run(console.load_admin())
        st.session_state.admin_loaded = True

    healthy = run(console.is_service_healthy())
    if healthy:
        st.caption(f"Workflow service: healthy ({settings.api_base_url})")
    else:
        st.warning(f"Workflow service unreachable at {settings.api_base_url}")

    st.subheader("Signal weights")
    _render_suggested_weights(console)
    render_weights_editor(console)

    st.divider()
    st.subheader("Conflicted decisions")
    render_conflicted_decisions(console)


def main() -> None:
    configure_logging()
    st.set_page_config(page_title="Payout Review Console", layout="wide")
    st.title("Payout Review Console")
    st.caption(f"Reviewing as {settings.reviewer_id}")

    console = get_console()
    tabs = st.tabs(["Payout History", "Admin"])

    with tabs[0]:
        render_history_tab(console)

    with tabs[1]:
        render_admin_tab(console)


if __name__ == "__main__":
    main()
