"""NiceGUI chat interface over ChatService and DocumentCache."""

from datetime import datetime, timedelta
from functools import partial

from nicegui import app, events, ui

from ragchat.api import ApiClient
from ragchat.chat import ChatService
from ragchat.config import get_client_config
from ragchat.documents import ACCEPTED_FILE_TYPES, MAX_FILE_SIZE, DocumentCache
from ragchat.errors import RagChatError
from ragchat.models import (
    Citation,
    DocumentRecord,
    Message,
    MessageRole,
    average_score,
    best_score,
)

CUSTOM_CSS = """
<link href="https://fonts.googleapis.com/css2?family=Inter:wght@400;500;600&display=swap"
      rel="stylesheet">
<style>
    * { font-family: 'Inter', sans-serif; }
    body { background: #f5f5f5; min-height: 100vh; }
    .app-container {
        background: white;
        border-radius: 12px;
        box-shadow: 0 2px 8px rgba(0, 0, 0, 0.1);
        overflow: hidden;
    }
    .header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); }
    .message-user {
        background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
        color: white;
        border-radius: 18px 18px 4px 18px;
    }
    .message-assistant {
        background: #f3f4f6;
        color: #1f2937;
        border-radius: 18px 18px 18px 4px;
    }
    .message-error { border: 1px solid #fca5a5; }
    .citation { border-left: 3px solid #667eea; }
</style>
"""

_api_client: ApiClient | None = None


def get_api_client() -> ApiClient:
    """Shared backend client for all browser tabs."""
    global _api_client
    if _api_client is None:
        _api_client = ApiClient.from_config(get_client_config())
    return _api_client


class BrowserStorage:
    """Storage port over NiceGUI's per-browser user storage."""

    def get(self, key: str) -> str | None:
        value = app.storage.user.get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        app.storage.user[key] = value

    def remove(self, key: str) -> None:
        app.storage.user.pop(key, None)


def score_classes(score: float) -> str:
    if score >= 0.8:
        return "text-green-600 bg-green-50"
    if score >= 0.6:
        return "text-blue-600 bg-blue-50"
    if score >= 0.4:
        return "text-yellow-600 bg-yellow-50"
    return "text-gray-600 bg-gray-50"


def render_citations(citations: list[Citation]) -> None:
    if not citations:
        return
    with ui.expansion(f"Sources ({len(citations)})", icon="menu_book").classes("w-full text-xs"):
        for citation in citations:
            with ui.column().classes("citation pl-2 gap-0 w-full"):
                with ui.row().classes("items-center gap-2"):
                    ui.label(citation.document_title or citation.document_id).classes("font-medium")
                    ui.label(f"{citation.similarity_score * 100:.1f}%").classes(
                        f"px-2 rounded {score_classes(citation.similarity_score)}"
                    )
                ui.label(citation.chunk_content[:300]).classes("text-gray-500")
        avg, best = average_score(citations), best_score(citations)
        ui.label(f"Average {avg * 100:.1f}% / best {best * 100:.1f}%").classes("text-gray-400")


def render_message(msg: Message) -> ui.markdown:
    is_user = msg.role == MessageRole.USER
    align = "justify-end" if is_user else "justify-start"
    bubble = "message-user" if is_user else "message-assistant"
    if msg.error:
        bubble += " message-error"

    with ui.row().classes(f"w-full {align}"):
        with ui.column().classes("max-w-[75%] gap-1"):
            with ui.element("div").classes(f"px-4 py-3 {bubble}"):
                body = ui.markdown(msg.content).classes("text-sm leading-relaxed")
                if msg.error:
                    ui.label(f"Error: {msg.error}").classes("text-xs text-red-600")
            if not is_user:
                render_citations(msg.citations)
            created = datetime.fromisoformat(msg.created_at).astimezone()
            ui.label(created.strftime("%I:%M %p")).classes("text-[10px] text-gray-400")
    return body


@ui.page("/")
async def chat_page() -> None:
    """Main chat page with a document side panel."""
    ui.add_head_html(CUSTOM_CSS)
    config = get_client_config()
    api = get_api_client()
    chat = ChatService(api, BrowserStorage(), session_duration=timedelta(hours=config.session_hours))
    documents = DocumentCache(api, ttl=config.document_cache_ttl)
    documents.start_sweeper()
    ui.context.client.on_disconnect(documents.stop_sweeper)

    messages_container: ui.column
    documents_container: ui.column
    input_field: ui.textarea
    send_btn: ui.button
    rag_toggle: ui.switch
    expiry_label: ui.label

    def refresh_messages() -> None:
        messages_container.clear()
        with messages_container:
            if not chat.messages:
                with ui.column().classes("w-full h-64 items-center justify-center gap-3"):
                    ui.icon("forum").classes("text-5xl text-gray-300")
                    ui.label("Start a conversation").classes("text-lg text-gray-400")
            for msg in chat.messages:
                render_message(msg)
        expiry_label.set_text(chat.sessions.format_time_until_expiry() or "no session")

    async def refresh_documents(force: bool = False) -> None:
        session_id = chat.sessions.get()
        documents_container.clear()
        if session_id is None:
            return
        try:
            docs = await documents.load(session_id, force=force)
        except RagChatError as e:
            ui.notify(str(e), type="negative")
            docs = documents.documents(session_id)
        render_documents(session_id, docs)

    async def delete_document(session_id: str, doc_id: str) -> None:
        remaining = [d for d in documents.documents(session_id) if d.document_id != doc_id]
        render_documents(session_id, remaining)
        try:
            await documents.delete(doc_id, session_id)
        except RagChatError as e:
            ui.notify(str(e), type="negative")
        await refresh_documents()

    def render_documents(session_id: str, docs: list[DocumentRecord]) -> None:
        documents_container.clear()
        with documents_container:
            if not docs:
                ui.label("No documents yet").classes("text-xs text-gray-400")
            for doc in docs:
                with ui.row().classes("w-full items-center justify-between"):
                    ui.label(doc.title).classes("text-sm truncate")
                    ui.button(
                        icon="delete",
                        on_click=partial(delete_document, session_id, doc.document_id),
                    ).props("flat round dense size=sm")

    async def handle_upload(e: events.UploadEventArguments) -> None:
        try:
            session_id = await chat.sessions.ensure()
            await documents.upload(e.file.name, await e.file.read(), session_id)
        except RagChatError as err:
            ui.notify(str(err), type="negative")
            return
        ui.notify(f"Uploaded {e.file.name}", type="positive")
        render_documents(session_id, documents.documents(session_id))

    async def send_message() -> None:
        text = input_field.value.strip()
        if not text or chat.is_streaming:
            return

        input_field.value = ""
        send_btn.disable()
        answer_body: ui.markdown | None = None

        def on_update(answer: Message) -> None:
            nonlocal answer_body
            if answer_body is None:
                refresh_messages()
                answer_body = render_last(answer)
            answer_body.set_content(answer.content)

        def render_last(answer: Message) -> ui.markdown:
            messages_container.clear()
            with messages_container:
                for msg in chat.messages[:-1]:
                    render_message(msg)
                return render_message(answer)

        try:
            await chat.send(
                text,
                config.generation_defaults(use_rag=rag_toggle.value),
                on_update=on_update,
            )
        except (RagChatError, ValueError) as e:
            ui.notify(str(e), type="negative")
        finally:
            send_btn.enable()
            refresh_messages()

    async def new_chat() -> None:
        try:
            await chat.new_chat()
        except RagChatError as e:
            ui.notify(str(e), type="negative")
        refresh_messages()
        await refresh_documents()

    # === UI Layout ===
    with ui.row().classes("w-full min-h-screen p-4 md:p-8 gap-4 no-wrap"):
        with ui.column().classes("flex-grow app-container").style("height: calc(100vh - 4rem)"):
            with ui.row().classes("w-full header px-5 py-4 items-center justify-between"):
                with ui.row().classes("items-center gap-3"):
                    ui.icon("smart_toy").classes("text-white text-3xl")
                    ui.label("RAG Assistant").classes("text-lg font-semibold text-white")
                with ui.row().classes("items-center gap-3"):
                    expiry_label = ui.label().classes("text-xs text-white/80 font-mono")
                    ui.button(icon="add", on_click=new_chat).props("flat round color=white")

            with ui.scroll_area().classes("flex-grow w-full bg-gray-50"):
                messages_container = ui.column().classes("w-full gap-4 p-5")

            with ui.row().classes("w-full p-4 gap-3 items-end bg-white border-t"):
                rag_toggle = ui.switch("Use documents")
                input_field = (
                    ui.textarea(placeholder="Type a message...")
                    .props("autogrow borderless dense rows=1")
                    .classes("flex-grow")
                    .on("keydown.enter.prevent", send_message)
                )
                send_btn = ui.button(icon="send", on_click=send_message).props("round unelevated")

        with ui.column().classes("w-72 app-container p-4 gap-3"):
            ui.label("Documents").classes("text-base font-semibold")
            ui.upload(
                on_upload=handle_upload,
                auto_upload=True,
                max_file_size=MAX_FILE_SIZE,
            ).props(f'accept="{",".join(ACCEPTED_FILE_TYPES)}" flat').classes("w-full")
            ui.button("Refresh", icon="refresh", on_click=lambda: refresh_documents(force=True)).props(
                "flat dense"
            )
            documents_container = ui.column().classes("w-full gap-1")

    if chat.sessions.get() is not None:
        try:
            await chat.load_history()
        except RagChatError as e:
            ui.notify(str(e), type="warning")
    refresh_messages()
    await refresh_documents()
