# Overview: Flask API routes for product import; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ValidationError
from ..services import import_service


imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")


@imports_bp.post("/products")
@require_auth
@require_role("MANAGER")
def import_products_route():
    """Multipart upload of a .csv (UTF-8, header row) or .xlsx file under "file"."""
    if "file" not in request.files:
        raise ValidationError([{"field": "file", "message": "file is required"}])

    file = request.files["file"]
    filename = file.filename or ""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

    if ext == "csv":
        try:
            rows = import_service.read_csv_rows(file.stream.read())
        except UnicodeDecodeError:
            raise ValidationError([{"field": "file", "message": "file must be UTF-8 encoded"}])
    elif ext in {"xlsx", "xlsm"}:
        rows = import_service.read_xlsx_rows(file.stream)
    else:
        raise ValidationError([{"field": "file", "message": "Unsupported file format (use .csv or .xlsx)"}])

    run = import_service.import_product_rows(rows, file_name=filename, employee_id=g.current_user.id)
    return jsonify({"import": run.to_dict()}), 201


@imports_bp.get("/history")
@require_auth
def import_history_route():
    runs = import_service.import_history()
    return jsonify({"imports": [r.to_dict() for r in runs]}), 200
