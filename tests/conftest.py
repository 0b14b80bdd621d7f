"""Shared fixtures: an in-process fake of the log backend served over real HTTP."""

import threading
import uuid

import pytest
from flask import Flask, jsonify, request
from werkzeug.serving import make_server

from logimport.api_client import BackendClient


class FakeBackend:
    """Records every call and answers like the backend's /api/v1 routes.

    Tests tweak the public attributes to shape responses or inject failures.
    """

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.sessions: dict[str, dict] = {}
        self.ended: list[str] = []
        self.ingested: list[list[str]] = []
        self.reject_start = False
        self.fail_ingest_at: int | None = None
        self.fail_end = False
        self.suggestions: list[dict] = []
        self.parse_matches = True
        self.patterns: list[dict] = []
        self.log_groups: list[dict] = []
        self.log_streams: dict[str, list[dict]] = {}
        self.failing_groups: set[str] = set()
        self.event_pages: list[dict] = []
        self.event_requests: list[dict] = []
        self._page_cursor = 0
        self._lock = threading.Lock()

    def create_app(self) -> Flask:
        app = Flask(__name__)

        def record(name):
            body = request.get_json(silent=True) or {}
            with self._lock:
                self.calls.append((name, body))
            return body

        @app.route("/api/v1/ping")
        def ping():
            record("ping")
            return jsonify({"status": "pong"})

        @app.route("/api/v1/grok", methods=["GET", "POST"])
        def grok():
            if request.method == "POST":
                body = record("save-pattern")
                if not body.get("name") or not body.get("pattern"):
                    return jsonify({"status": "error", "error": "name and pattern are required"}), 400
                self.patterns.append(body)
                return jsonify({"status": "success", "message": "Pattern saved"})
            record("grok")
            return jsonify({"status": "success", "patterns": self.patterns})

        @app.route("/api/v1/parse", methods=["POST"])
        def parse():
            body = record("parse")
            if "grok_pattern" not in body:
                return jsonify({"status": "success", "type": "suggest", "results": self.suggestions})
            logs = body.get("logs") or []
            parsed = [{"message": line} for line in logs] if self.parse_matches else []
            return jsonify({"status": "success", "logs": parsed, "processed": len(parsed)})

        @app.route("/api/v1/ingest/start", methods=["POST"])
        def ingest_start():
            body = record("start")
            if self.reject_start or not body.get("pattern"):
                return jsonify({"status": "error", "error": "Invalid grok pattern"}), 400
            session_id = str(uuid.uuid4())
            self.sessions[session_id] = body
            return jsonify({"status": "success", "session_id": session_id})

        @app.route("/api/v1/ingest/logs", methods=["POST"])
        def ingest_logs():
            body = record("logs")
            if body.get("session_id") not in self.sessions:
                return jsonify({"status": "error", "error": "Invalid or missing session ID"}), 400
            if self.fail_ingest_at is not None and len(self.ingested) == self.fail_ingest_at:
                return jsonify({"status": "error", "error": "storage unavailable"}), 500
            logs = body.get("logs") or []
            self.ingested.append(logs)
            return jsonify({"status": "success", "processed": len(logs), "failed": 0})

        @app.route("/api/v1/ingest/end", methods=["POST"])
        def ingest_end():
            body = record("end")
            self.ended.append(body.get("session_id"))
            if self.fail_end:
                return jsonify({"status": "error", "error": "end failed"}), 500
            self.sessions.pop(body.get("session_id"), None)
            return jsonify({"status": "success"})

        @app.route("/api/v1/cloudwatch/log-groups", methods=["POST"])
        def log_groups():
            record("log-groups")
            return jsonify({"status": "success", "log_groups": self.log_groups, "region": "us-east-1"})

        @app.route("/api/v1/cloudwatch/log-streams", methods=["POST"])
        def log_streams():
            body = record("log-streams")
            group = body.get("log_group_name")
            if group in self.failing_groups:
                return jsonify({"status": "error", "error": f"access denied for {group}"}), 403
            return jsonify({
                "status": "success",
                "log_streams": self.log_streams.get(group, []),
                "region": "us-east-1",
            })

        @app.route("/api/v1/cloudwatch/log-events", methods=["POST"])
        def log_events():
            body = record("log-events")
            with self._lock:
                self.event_requests.append(body)
            if body.get("limit", 0) <= 100 and "next_token" not in body:
                # Preview request: head of the first page only.
                first = self.event_pages[0] if self.event_pages else {"events": []}
                events = first["events"][: body.get("limit", 100)]
                return jsonify({"status": "success", "log_events": events, "has_more": True})
            with self._lock:
                index = self._page_cursor
                self._page_cursor += 1
            page = self.event_pages[index]
            if page.get("error"):
                return jsonify({"status": "error", "error": page["error"]}), 500
            return jsonify({
                "status": "success",
                "log_events": page["events"],
                "next_token": page.get("next_token"),
                "has_more": page["has_more"],
                "region": "us-east-1",
            })

        return app

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def backend():
    """Serve a FakeBackend on an ephemeral port; yield (fake, base_url)."""
    fake = FakeBackend()
    server = make_server("127.0.0.1", 0, fake.create_app(), threaded=False)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield fake, f"http://127.0.0.1:{server.server_port}/api/v1"
    server.shutdown()
    thread.join(timeout=5)


@pytest.fixture
def client(backend):
    _, base_url = backend
    api = BackendClient(base_url, timeout=5.0)
    yield api
    api.close()
