"""
SheetLens - Web Application
JSON API for uploading files and generating chart-ready analyses
"""

import base64
import io
import logging
from typing import Optional

from flask import Flask, current_app, g, jsonify, request, send_file
from flask_cors import CORS
from flask.json.provider import DefaultJSONProvider
from werkzeug.utils import secure_filename
import numpy as np
import pandas as pd

from sheetlens import __version__
from sheetlens.config import SheetLensConfig, create_default_config
from sheetlens.core.errors import InvalidRequestError, SheetLensError
from sheetlens.core.parser import SUPPORTED_EXTENSIONS, is_supported
from sheetlens.core.service import AnalysisService

logger = logging.getLogger(__name__)

USER_HEADER = 'X-User-Email'
PUBLIC_ENDPOINTS = {'health'}


# Custom JSON encoder for numpy types
class CustomJSONProvider(DefaultJSONProvider):
    def default(self, obj):
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, pd.Timestamp):
            return obj.isoformat()
        if obj is pd.NaT:
            return None
        return super().default(obj)


def _service() -> AnalysisService:
    return current_app.extensions['sheetlens']


def _flag(name: str) -> bool:
    """Boolean query parameter ('true', '1', 'yes')."""
    return request.args.get(name, '').strip().lower() in ('true', '1', 'yes')


def _int_arg(name: str, default: int) -> int:
    value = request.args.get(name)
    if value in (None, ''):
        return default
    try:
        return int(value)
    except ValueError:
        raise InvalidRequestError(f"Query parameter '{name}' must be an integer") from None


def create_app(config: Optional[SheetLensConfig] = None, service: Optional[AnalysisService] = None) -> Flask:
    """Application factory."""
    config = config or create_default_config()

    app = Flask(__name__)
    app.json_provider_class = CustomJSONProvider
    app.json = CustomJSONProvider(app)
    app.secret_key = config.server.secret_key
    app.config['MAX_CONTENT_LENGTH'] = config.server.max_upload_bytes
    CORS(app, origins=config.server.cors_origins)

    app.extensions['sheetlens'] = service or AnalysisService(config)

    register_error_handlers(app)
    register_routes(app)
    return app


# ============================================================================
# Error handlers
# ============================================================================

def register_error_handlers(app: Flask):
    """Every /api/ error is a JSON body {success, message, errorType}."""

    @app.errorhandler(SheetLensError)
    def sheetlens_error(e):
        if e.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed: {e.message}")
        else:
            logger.info(f"{request.method} {request.path} rejected ({e.status_code}): {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith('/api/'):
            return jsonify({'success': False, 'message': 'Not found', 'errorType': 'not_found'}), 404
        return e

    @app.errorhandler(405)
    def method_not_allowed(e):
        if request.path.startswith('/api/'):
            return jsonify({
                'success': False,
                'message': f'Method {request.method} not allowed',
                'errorType': 'method_not_allowed',
            }), 405
        return e

    @app.errorhandler(413)
    def file_too_large(e):
        limit_mb = current_app.config['MAX_CONTENT_LENGTH'] // (1024 * 1024)
        return jsonify({
            'success': False,
            'message': f'File too large. Maximum size is {limit_mb}MB.',
            'errorType': 'file_too_large',
        }), 413

    @app.errorhandler(500)
    def server_error(e):
        original = getattr(e, 'original_exception', None) or e
        logger.error(f"Unhandled error on {request.method} {request.path}", exc_info=original)
        return jsonify({
            'success': False,
            'message': 'Internal server error',
            'errorType': 'server_error',
        }), 500


# ============================================================================
# Routes
# ============================================================================

def register_routes(app: Flask):

    @app.before_request
    def require_identity():
        if not request.path.startswith('/api/') or request.endpoint in PUBLIC_ENDPOINTS:
            return None
        if request.method == 'OPTIONS':
            return None
        user = request.headers.get(USER_HEADER, '').strip()
        if not user:
            return jsonify({
                'success': False,
                'message': 'Not authorized to access this route',
                'errorType': 'not_authenticated',
            }), 401
        g.user = user
        return None

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({'success': True, 'status': 'ok', 'version': __version__})

    # ------------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------------

    @app.route('/api/files', methods=['POST'])
    def upload_files():
        """Upload one or more files (multipart field 'files')."""
        uploads = [f for f in request.files.getlist('files') if f and f.filename]
        if not uploads:
            raise InvalidRequestError('Please upload at least one file')

        for upload in uploads:
            if not secure_filename(upload.filename) or not is_supported(upload.filename):
                allowed = ', '.join(f'.{ext}' for ext in sorted(SUPPORTED_EXTENSIONS))
                raise InvalidRequestError(f'Invalid file "{upload.filename}". Allowed types: {allowed}')

        registered = []
        duplicates = []
        for upload in uploads:
            descriptor, created = _service().files.register(g.user, upload.filename, upload.read())
            (registered if created else duplicates).append(descriptor.to_dict())

        if not registered:
            return jsonify({
                'success': True,
                'message': 'All files were already uploaded',
                'data': [],
                'duplicates': duplicates,
            })

        return jsonify({
            'success': True,
            'message': f'{len(registered)} file(s) uploaded successfully',
            'data': registered,
            'duplicates': duplicates,
        }), 201

    @app.route('/api/files', methods=['GET'])
    def list_files():
        page = _service().files.list_files(
            g.user,
            search=request.args.get('search'),
            page=_int_arg('page', 1),
            limit=_int_arg('limit', 10),
        )
        return jsonify({
            'success': True,
            'count': page.count,
            'total': page.total,
            'totalPages': page.total_pages,
            'currentPage': page.page,
            'hasNextPage': page.page < page.total_pages,
            'hasPreviousPage': page.page > 1,
            'data': page.items,
        })

    @app.route('/api/files/<file_id>', methods=['DELETE'])
    def delete_file(file_id):
        removed = _service().files.delete_file(g.user, file_id)
        return jsonify({
            'success': True,
            'message': 'File deleted successfully',
            'data': {'deletedAnalyses': removed},
        })

    # ------------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------------

    @app.route('/api/v1/analysis', methods=['GET'])
    def get_analysis():
        """Fetch or generate an analysis of one file."""
        outcome = _service().analyze(
            g.user,
            request.args.get('fileId', ''),
            request.args.get('type', 'overview'),
            fetch_only=_flag('fetchOnly'),
            generate_new=_flag('generateNew'),
        )
        return jsonify(outcome.to_dict())

    @app.route('/api/v1/analysis/info', methods=['GET'])
    def get_file_info():
        info = _service().describe_file(g.user, request.args.get('fileId', ''))
        return jsonify({'success': True, 'data': info})

    @app.route('/api/v1/analysis/chart', methods=['POST'])
    def generate_chart():
        body = request.get_json(silent=True) or {}
        chart = _service().custom_chart(
            g.user,
            body.get('fileId', ''),
            body.get('chartType', 'bar'),
            body.get('xAxis'),
            body.get('yAxis'),
            fmt=body.get('format') or 'png',
        )
        image = chart.pop('image')

        # An explicit format downloads the rendered chart
        if body.get('format'):
            return send_file(
                io.BytesIO(image.content),
                mimetype=image.mimetype,
                as_attachment=True,
                download_name=image.filename,
            )

        encoded = base64.b64encode(image.content).decode('ascii')
        chart['chartImage'] = f"data:{image.mimetype};base64,{encoded}"
        return jsonify({'success': True, 'data': chart})

    @app.route('/api/v1/analysis/history', methods=['GET'])
    def get_history():
        page = _service().history(
            g.user,
            request.args.get('type') or None,
            request.args.get('fileId') or None,
            page=_int_arg('page', 1),
            limit=_int_arg('limit', 10),
        )
        return jsonify({'success': True, **page.to_dict()})

    @app.route('/api/v1/analysis/export', methods=['GET'])
    def export_analysis():
        exported = _service().export(
            g.user,
            request.args.get('fileId', ''),
            request.args.get('type', 'overview'),
            request.args.get('format', 'csv'),
        )
        return send_file(
            io.BytesIO(exported.content),
            mimetype=exported.mimetype,
            as_attachment=True,
            download_name=exported.filename,
        )


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    settings = create_default_config()
    create_app(settings).run(host=settings.server.host, port=settings.server.port, debug=True)
