"""Streamlit agent console - upload, dashboard, document review/editing/export, settings.

Run with: streamlit run ui/app.py
"""

# Add project root to sys.path for imports to work when run via streamlit
import sys
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio  # noqa: E402
import uuid  # noqa: E402
from typing import Any  # noqa: E402

import httpx  # noqa: E402
import streamlit as st  # noqa: E402

from backend.app.config import get_settings  # noqa: E402
from backend.app.errors import EmptySummaryError  # noqa: E402
from backend.app.models.common import DetailLevel, FocusArea, OutputFormat, Theme  # noqa: E402
from backend.app.summary.blocks import parse_summary, to_markdown  # noqa: E402
from ui import helpers  # noqa: E402
from ui.summary_editor import SaveOutcome, SummaryDraft  # noqa: E402
from ui.upload_tracker import (  # noqa: E402
    FailureKind,
    PollingConfig,
    UploadManager,
    UploadRecord,
    UploadState,
)

# Configuration
SETTINGS = get_settings()
BACKEND_URL = SETTINGS.api_base_url

# Page config
st.set_page_config(page_title="Policy Intake", page_icon="📄", layout="wide")

# Initialize session state
for key, default in (
    ("uploads", {}),
    ("upload_manager", None),
    ("selected_document", None),
    ("drafts", {}),
):
    if key not in st.session_state:
        st.session_state[key] = default


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=BACKEND_URL, headers=helpers.get_auth_header(), timeout=60.0)


async def _run_uploads(records: dict[str, UploadRecord], on_change: Any) -> None:
    async with _client() as client:
        manager = UploadManager(client, PollingConfig.from_settings(SETTINGS), on_change=on_change)
        for key, record in records.items():
            manager.add(key, record)
        st.session_state.upload_manager = manager
        await manager.run_all()


async def _retry_upload(key: str, record: UploadRecord, on_change: Any) -> None:
    async with _client() as client:
        manager = UploadManager(client, PollingConfig.from_settings(SETTINGS), on_change=on_change)
        manager.add(key, record)
        st.session_state.upload_manager = manager
        await manager.retry(key)


def _remove_upload(key: str) -> None:
    """Drop an upload row; a tracker still running for it stops updating the record."""
    manager: UploadManager | None = st.session_state.upload_manager
    if manager is not None:
        manager.remove(key)
    st.session_state.uploads.pop(key, None)


def _processing_options_form(prefix: str, defaults: dict[str, Any]) -> dict[str, Any]:
    """Widgets for ProcessingOptions; returns the camelCase dict."""
    detail_levels = [level.value for level in DetailLevel]
    formats = [fmt.value for fmt in OutputFormat]
    col1, col2 = st.columns(2)
    with col1:
        detail_level = st.selectbox(
            "Detail level",
            detail_levels,
            index=detail_levels.index(defaults.get("detailLevel", "comprehensive")),
            key=f"{prefix}_detail",
        )
        output_format = st.selectbox(
            "Output format",
            formats,
            index=formats.index(defaults.get("outputFormat", "structured")),
            key=f"{prefix}_format",
        )
        focus_areas = st.multiselect(
            "Focus areas",
            [area.value for area in FocusArea],
            default=defaults.get("focusAreas", ["coverage", "exclusions", "eligibility"]),
            key=f"{prefix}_focus",
        )
    with col2:
        toggles = {}
        for name, label in (
            ("extractCoverage", "Extract coverage"),
            ("generateExplanations", "Generate explanations"),
            ("includeImportance", "Explain why it matters"),
            ("highlightRisks", "Highlight risks"),
            ("generateRecommendations", "Recommendations"),
            ("includeComparisons", "Comparisons"),
            ("includeScenarios", "Claim scenarios"),
        ):
            toggles[name] = st.checkbox(
                label, value=bool(defaults.get(name, False)), key=f"{prefix}_{name}"
            )
    return {
        "detailLevel": detail_level,
        "outputFormat": output_format,
        "focusAreas": focus_areas,
        **toggles,
    }


def _open_document(document_id: str) -> None:
    # Runs as a widget callback, before the page radio is instantiated
    st.session_state.selected_document = document_id
    st.session_state.page = "Document"


def _render_upload_status(record: UploadRecord) -> None:
    if record.state == UploadState.success:
        st.success(f"✅ {record.filename} processed")
    elif record.state == UploadState.error:
        label = {
            FailureKind.upload: "Upload failed",
            FailureKind.processing: "Processing failed",
            FailureKind.timeout: "Timed out",
            FailureKind.status_check: "Status check failed",
        }[record.failure_kind or FailureKind.upload]
        st.error(f"❌ {record.filename}: {label} - {record.error}")
    elif record.state == UploadState.retrying:
        st.warning(f"🔁 {record.filename}: retrying upload (attempt {record.upload_attempts})")
    else:
        st.progress(record.progress / 100, text=f"{record.filename}: {record.stage or 'Uploading'}")


# =============================================================================
# PAGES
# =============================================================================


def upload_page() -> None:
    st.subheader("📤 Upload policies")
    agent_settings = helpers.get_settings(BACKEND_URL)

    with st.form("upload_form"):
        files = st.file_uploader(
            "Policy documents (PDF or DOCX, max 10 MB)",
            type=["pdf", "docx"],
            accept_multiple_files=True,
        )
        with st.expander("Processing options"):
            options = _processing_options_form("upload", agent_settings["defaultProcessingOptions"])
        submitted = st.form_submit_button("Upload and analyze", type="primary")

    status_area = st.container()
    placeholders: dict[str, Any] = {}

    def on_change(record: UploadRecord) -> None:
        for key, tracked in st.session_state.uploads.items():
            if tracked is record and key in placeholders:
                with placeholders[key].container():
                    _render_upload_status(record)

    if submitted and files:
        new_records = {
            uuid.uuid4().hex: UploadRecord(
                filename=file.name,
                content=file.getvalue(),
                content_type=file.type,
                options=options,
            )
            for file in files
        }
        st.session_state.uploads.update(new_records)
        with status_area:
            for key in new_records:
                placeholders[key] = st.empty()
        asyncio.run(_run_uploads(new_records, on_change))

    for key, record in list(st.session_state.uploads.items()):
        col_status, col_actions = st.columns([4, 1])
        with col_status:
            _render_upload_status(record)
        with col_actions:
            if record.state == UploadState.success and record.document_id:
                st.button(
                    "Open",
                    key=f"open_{key}",
                    on_click=_open_document,
                    args=(record.document_id,),
                )
            if record.state == UploadState.error and st.button("Retry", key=f"retry_{key}"):
                asyncio.run(_retry_upload(key, record, on_change))
                st.rerun()
            st.button("Remove", key=f"remove_{key}", on_click=_remove_upload, args=(key,))


def dashboard_page() -> None:
    st.subheader("🗂️ Documents")
    col_q, col_status, col_sort, col_fav = st.columns([3, 1, 1, 1])
    with col_q:
        query = st.text_input("Search", placeholder="File, client or policy reference")
    with col_status:
        status_filter = st.selectbox("Status", ["all", "processed", "pending", "failed"])
    with col_sort:
        sort = st.selectbox("Sort", ["uploaded", "name", "size", "last_viewed"])
    with col_fav:
        favorites = st.checkbox("Favorites only")

    try:
        documents = helpers.list_documents(BACKEND_URL, query, status_filter, favorites, sort)
    except httpx.HTTPError as e:
        st.error(f"Could not load documents: {e}")
        return

    if not documents:
        st.info("No documents yet. Upload a policy to get started.")
        return

    for document in documents:
        document_id = document["id"]
        with st.container(border=True):
            col_info, col_tags, col_actions = st.columns([3, 2, 2])
            with col_info:
                star = "⭐ " if document["isFavorite"] else ""
                st.markdown(f"**{star}{document['originalName']}**")
                st.caption(
                    f"{helpers.document_status_label(document)} · "
                    f"{helpers.format_file_size(document['fileSize'])} · "
                    f"uploaded {helpers.format_timestamp(document['uploadedAt'])} · "
                    f"{document['pdfExportCount']} exports"
                )
                if document.get("clientName"):
                    st.caption(f"Client: {document['clientName']}")
            with col_tags:
                raw_tags = st.text_input(
                    "Tags", value=", ".join(document["tags"]), key=f"tags_{document_id}"
                )
                if raw_tags != ", ".join(document["tags"]):
                    helpers.update_tags(BACKEND_URL, document_id, helpers.parse_tags(raw_tags))
                    st.rerun()
            with col_actions:
                st.button(
                    "Open", key=f"view_{document_id}", on_click=_open_document, args=(document_id,)
                )
                if st.button(
                    "Unfavorite" if document["isFavorite"] else "Favorite",
                    key=f"fav_{document_id}",
                ):
                    helpers.set_favorite(BACKEND_URL, document_id, not document["isFavorite"])
                    st.rerun()
                if st.button("Delete", key=f"delete_{document_id}"):
                    helpers.delete_document(BACKEND_URL, document_id)
                    st.rerun()


def _editor_section(document_id: str, document: dict[str, Any]) -> None:
    drafts: dict[str, SummaryDraft] = st.session_state.drafts
    draft = drafts.get(document_id)
    if draft is None or (not draft.dirty and draft.stored != document["summary"]):
        draft = SummaryDraft(stored=document["summary"])
        drafts[document_id] = draft

    edited = st.text_area("Summary", value=draft.draft, height=400, key=f"editor_{document_id}")
    draft.edit(edited)
    if draft.dirty:
        st.caption("Unsaved changes")

    col_save, col_reset = st.columns(2)
    with col_save:
        if st.button("Save", type="primary", key=f"save_{document_id}"):
            try:
                outcome = draft.save(
                    lambda text: helpers.update_summary(BACKEND_URL, document_id, text)
                )
            except EmptySummaryError as e:
                st.error(str(e))
            except httpx.HTTPStatusError as e:
                st.error(helpers.error_detail(e))
            else:
                if outcome == SaveOutcome.no_changes:
                    st.info("No changes")
                else:
                    st.success("Saved as a new version")
                    st.rerun()
    with col_reset:
        if st.button("Reset", key=f"reset_{document_id}"):
            draft.reset()
            st.session_state.pop(f"editor_{document_id}", None)
            st.rerun()


def _history_section(document_id: str) -> None:
    for version in helpers.get_summary_history(BACKEND_URL, document_id):
        active = " (active)" if version["isActive"] else ""
        with st.expander(
            f"Version {version['versionNumber']}{active} · {version['source']} · "
            f"{helpers.format_timestamp(version['createdAt'])}"
        ):
            st.markdown(to_markdown(parse_summary(version["summary"])))
            if not version["isActive"]:
                col_activate, col_delete = st.columns(2)
                with col_activate:
                    if st.button("Make active", key=f"activate_{version['id']}"):
                        helpers.activate_version(BACKEND_URL, document_id, version["id"])
                        st.rerun()
                with col_delete:
                    if st.button("Delete version", key=f"delversion_{version['id']}"):
                        helpers.delete_version(BACKEND_URL, document_id, version["id"])
                        st.rerun()


def _export_section(document_id: str, document: dict[str, Any], prefs: dict[str, Any]) -> None:
    with st.form(f"export_{document_id}"):
        client_name = st.text_input(
            "Client name", value=document.get("clientName") or prefs["defaultClientName"]
        )
        policy_reference = st.text_input(
            "Policy reference",
            value=document.get("policyReference") or prefs["defaultPolicyReference"],
        )
        include_branding = st.checkbox("Firm branding", value=prefs["includeBranding"])
        include_explanations = st.checkbox(
            "Why this matters", value=prefs["includeExplanations"]
        )
        include_technical = st.checkbox(
            "Technical details", value=prefs["includeTechnicalDetails"]
        )
        include_signature = st.checkbox("Agent signature", value=prefs["includeAgentSignature"])
        submitted = st.form_submit_button("Generate PDF")

    if submitted:
        try:
            content, filename = helpers.export_pdf(
                BACKEND_URL,
                document_id,
                {
                    "clientName": client_name,
                    "policyReference": policy_reference,
                    "includeBranding": include_branding,
                    "includeExplanations": include_explanations,
                    "includeTechnicalDetails": include_technical,
                    "includeAgentSignature": include_signature,
                },
            )
        except httpx.HTTPStatusError as e:
            st.error(helpers.error_detail(e))
        else:
            st.download_button("Download PDF", content, file_name=filename, mime="application/pdf")


def document_page() -> None:
    document_id = st.session_state.selected_document
    if not document_id:
        st.info("Pick a document on the dashboard.")
        return

    status_code, document = helpers.get_document(BACKEND_URL, document_id)
    if status_code == 202:
        st.info("⏳ Document is still being processed.")
        return
    if status_code == 422:
        st.error(f"Processing failed: {document['error']}")
        return

    st.subheader(f"📄 {document['originalName']}")
    with st.expander("Client details"):
        client_name = st.text_input("Client name", value=document.get("clientName") or "")
        policy_reference = st.text_input(
            "Policy reference", value=document.get("policyReference") or ""
        )
        if st.button("Save details"):
            helpers.update_metadata(BACKEND_URL, document_id, client_name, policy_reference)
            st.rerun()

    tab_summary, tab_edit, tab_data, tab_history, tab_regenerate, tab_export = st.tabs(
        ["Summary", "Edit", "Extracted data", "History", "Regenerate", "Export"]
    )
    with tab_summary:
        st.markdown(to_markdown(parse_summary(document["summary"])))
    with tab_edit:
        _editor_section(document_id, document)
    with tab_data:
        st.json(document["extractedData"])
    with tab_history:
        _history_section(document_id)
    with tab_regenerate:
        options = _processing_options_form("regen", document.get("processingOptions") or {})
        if st.button("Regenerate summary", type="primary"):
            with st.spinner("Regenerating..."):
                try:
                    helpers.regenerate_summary(BACKEND_URL, document_id, options)
                except httpx.HTTPStatusError as e:
                    st.error(helpers.error_detail(e))
                else:
                    st.session_state.drafts.pop(document_id, None)
                    st.rerun()
    with tab_export:
        agent_settings = helpers.get_settings(BACKEND_URL)
        _export_section(document_id, document, agent_settings["exportPreferences"])


def settings_page() -> None:
    st.subheader("⚙️ Settings")
    current = helpers.get_settings(BACKEND_URL)

    with st.form("settings_form"):
        st.markdown("#### Agent profile")
        profile = dict(current["agentProfile"])
        for name, label in (
            ("name", "Name"),
            ("title", "Title"),
            ("phone", "Phone"),
            ("email", "Email"),
            ("license", "License number"),
            ("signature", "Signature line"),
            ("firmName", "Firm name"),
            ("firmAddress", "Firm address"),
            ("firmPhone", "Firm phone"),
            ("firmWebsite", "Firm website"),
        ):
            profile[name] = st.text_input(label, value=profile.get(name, ""))

        st.markdown("#### Export preferences")
        prefs = dict(current["exportPreferences"])
        for name, label in (
            ("includeBranding", "Firm branding"),
            ("includeExplanations", "Why this matters"),
            ("includeTechnicalDetails", "Technical details"),
            ("includeAgentSignature", "Agent signature"),
        ):
            prefs[name] = st.checkbox(label, value=prefs[name])
        prefs["defaultClientName"] = st.text_input(
            "Default client name", value=prefs["defaultClientName"]
        )
        prefs["defaultPolicyReference"] = st.text_input(
            "Default policy reference", value=prefs["defaultPolicyReference"]
        )

        st.markdown("#### Default processing options")
        processing = _processing_options_form("settings", current["defaultProcessingOptions"])

        st.markdown("#### Interface")
        ui_prefs = dict(current["uiPreferences"])
        themes = [theme.value for theme in Theme]
        ui_prefs["theme"] = st.selectbox(
            "Theme", themes, index=themes.index(ui_prefs.get("theme", "system"))
        )
        ui_prefs["compactView"] = st.checkbox("Compact view", value=ui_prefs["compactView"])
        ui_prefs["autoRefresh"] = st.checkbox("Auto refresh", value=ui_prefs["autoRefresh"])
        ui_prefs["showPreview"] = st.checkbox("Show preview", value=ui_prefs["showPreview"])

        if st.form_submit_button("Save settings", type="primary"):
            helpers.put_settings(
                BACKEND_URL,
                {
                    "agentProfile": profile,
                    "exportPreferences": prefs,
                    "defaultProcessingOptions": processing,
                    "uiPreferences": ui_prefs,
                },
            )
            st.success("Settings saved")


# =============================================================================
# NAVIGATION
# =============================================================================
PAGES = {
    "Upload": upload_page,
    "Dashboard": dashboard_page,
    "Document": document_page,
    "Settings": settings_page,
}

st.title("📄 Policy Intake")
page = st.sidebar.radio("Page", list(PAGES), key="page")
PAGES[page]()
