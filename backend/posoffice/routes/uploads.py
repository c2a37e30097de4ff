# Overview: Shared handler for TSV upload endpoints; streams back the per-row report.

from flask import Response, request, jsonify, current_app

from ..errors import PosError
from ..services import upload_service
from ..services.tsv import TSV_MEDIA_TYPE


def handle_upload(kind: str):
    """
    Read the multipart "file" part, run the upload pipeline, and answer with
    the report as a TSV attachment plus count headers.

    File-level failures (empty, wrong suffix, too large, bad header) answer
    400 JSON and apply nothing.
    """
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400

    file = request.files["file"]
    try:
        content = file.stream.read()
        report = upload_service.process_upload(kind, file.filename, content)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process %s upload", kind)
        return jsonify({"error": "Internal server error"}), 500

    response = Response(report.content, mimetype=TSV_MEDIA_TYPE)
    response.headers["Content-Disposition"] = f'attachment; filename="{report.filename}"'
    response.headers["X-Upload-Accepted"] = str(report.accepted)
    response.headers["X-Upload-Rejected"] = str(report.rejected)
    response.headers["X-Upload-Unparsed"] = str(report.unparsed)
    return response
