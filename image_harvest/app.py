"""Flask endpoints: streamed processing, one-time archive download, template."""

from __future__ import annotations

import io
import logging
from typing import Optional

from flask import Flask, Response, jsonify, request, send_file
from werkzeug.exceptions import HTTPException

from .config import HarvestConfig
from .errors import NotFound, ValidationError
from .ingest import build_template, parse_table
from .pipeline import Harvester
from .progress import ProgressChannel

logger = logging.getLogger("image_harvest.app")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _json_error(message: str, status_code: int = 400):
    return jsonify(error=message), status_code


def create_app(
    config: Optional[HarvestConfig] = None,
    harvester: Optional[Harvester] = None,
) -> Flask:
    """Build the web app around a harvester (one is created from config if omitted)."""
    if harvester is None:
        harvester = Harvester.from_config(config or HarvestConfig.from_env())
    app = Flask(__name__)
    app.extensions["image_harvest"] = harvester

    @app.errorhandler(Exception)
    def _handle_unexpected_error(exc):
        if isinstance(exc, HTTPException):
            return exc
        logger.exception("Unhandled exception while serving %s", request.path)
        return _json_error(f"An error occurred: {exc}", 500)

    @app.route("/health")
    def health():
        return jsonify(status="ok")

    @app.route("/api/process", methods=["POST"])
    def process():
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            return _json_error("No file uploaded", 400)
        try:
            records = parse_table(upload.read(), upload.filename)
        except ValidationError as exc:
            return _json_error(str(exc), 400)

        channel = ProgressChannel(harvester.stream(records))
        return Response(
            channel,
            mimetype="text/plain; charset=utf-8",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.route("/api/download")
    def download():
        artifact_id = request.args.get("id")
        if not artifact_id:
            return _json_error("Missing file ID", 400)
        try:
            data = harvester.store.get(artifact_id)
        except NotFound:
            return _json_error("File not found. It may have expired.", 404)
        return send_file(
            io.BytesIO(data),
            mimetype="application/zip",
            as_attachment=True,
            download_name="images.zip",
            conditional=False,
            etag=False,
            max_age=0,
        )

    @app.route("/api/template")
    def template():
        return send_file(
            io.BytesIO(build_template()),
            mimetype=XLSX_MIMETYPE,
            as_attachment=True,
            download_name="sample_template.xlsx",
            conditional=False,
            etag=False,
            max_age=0,
        )

    return app
