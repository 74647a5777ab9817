# Batch Retagger - Batch ID3 tag rewriting service
# Copyright (C) 2025 Dr. William Nelson Leonard
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

from flask import Flask, jsonify, request, send_file, current_app
import uuid
from io import BytesIO

from config import (
    PORT, HOST, MAX_UPLOAD_MB, FILENAME_TEMPLATES,
    DEFAULT_FILENAME_TEMPLATE, logger
)

from tagging.registry import FileHandleRegistry, MemoryFileHandle
from tagging.summary import SummaryStore
from tagging.batch.jobs import JobManager
from tagging.batch.processor import BatchOptions
from tagging.album_art.resolver import UrlCoverArt, cover_art_ref_from_value
from tagging.album_art.processor import is_corrupted_image
from tagging.metadata.reader import read_metadata
from tagging.metadata.fields import normalize_fields
from tagging.naming import infer_fields_from_filename
from tagging.file_utils import check_format_support
from tagging.exceptions import MetadataReadError
from tagging.archive import build_zip


def _services():
    return current_app.extensions['tagger']


def create_app(registry=None, summary_store=None, jobs=None):
    """
    Build the Flask app around one registry, summary store and job manager

    Each argument defaults to a fresh instance, so tests can pass their own.
    """
    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_MB * 1024 * 1024

    if registry is None:
        registry = FileHandleRegistry()
    if summary_store is None:
        summary_store = SummaryStore()
    if jobs is None:
        jobs = JobManager(summary_store)
    app.extensions['tagger'] = {
        'registry': registry,
        'summaries': summary_store,
        'jobs': jobs
    }

    @app.after_request
    def add_cache_headers(response):
        """Add cache-control headers to prevent reverse proxy caching of dynamic content"""
        if response.mimetype == 'application/json':
            response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, private'
            response.headers['Pragma'] = 'no-cache'
            response.headers['Expires'] = '0'
        return response

    @app.errorhandler(413)
    def upload_too_large(e):
        return jsonify({'error': f'Upload exceeds {MAX_UPLOAD_MB} MB'}), 413

    _register_file_routes(app)
    _register_process_routes(app)
    _register_history_routes(app)

    return app


# ==============
# FILE ENDPOINTS
# ==============

def _register_file_routes(app):

    @app.route('/files', methods=['POST'])
    def upload_files():
        """Store uploaded files in the registry"""
        uploads = request.files.getlist('files')
        if not uploads:
            return jsonify({'error': 'No files uploaded'}), 400

        registry = _services()['registry']
        stored = []
        for storage in uploads:
            handle = MemoryFileHandle.from_upload(storage)
            file_id = str(uuid.uuid4())
            registry.store(file_id, handle, {'format': check_format_support(handle.name)})
            stored.append(dict(registry.get_metadata(file_id), id=file_id))

        logger.info(f"Uploaded {len(stored)} files")
        return jsonify({'status': 'success', 'files': stored}), 201

    @app.route('/files')
    def list_files():
        registry = _services()['registry']
        return jsonify({
            'files': [record.to_dict() for record in registry.get_all()],
            'stats': registry.stats()
        })

    @app.route('/files/<file_id>')
    def get_file(file_id):
        """Get a stored file's snapshot with its existing tags"""
        registry = _services()['registry']
        handle = registry.get(file_id)
        if handle is None:
            return jsonify({'error': f'File {file_id} is no longer available, please select it again'}), 404

        response_data = registry.get_metadata(file_id)
        response_data['id'] = file_id
        response_data['inferred'] = infer_fields_from_filename(handle.name)

        if not check_format_support(handle.name)['read']:
            response_data['metadata'] = {}
            return jsonify(response_data)

        try:
            metadata = read_metadata(handle)
        except MetadataReadError as e:
            logger.warning(f"Could not read tags from {handle.name}: {e}")
            response_data['metadata'] = {}
            response_data['readError'] = str(e)
            return jsonify(response_data)

        cover = metadata.pop('cover_art', None)
        response_data['metadata'] = metadata
        response_data['hasArt'] = cover is not None
        return jsonify(response_data)

    @app.route('/files/<file_id>', methods=['DELETE'])
    def delete_file(file_id):
        if not _services()['registry'].remove(file_id):
            return jsonify({'error': 'File not found'}), 404
        return jsonify({'status': 'success'})

    @app.route('/batch/new', methods=['POST'])
    def new_batch():
        """Forget every file, the cover art and all finished jobs"""
        services = _services()
        cleared = services['registry'].clear()
        services['jobs'].clear()
        return jsonify({'status': 'success', 'cleared': cleared})

    @app.route('/cover-art', methods=['POST'])
    def set_cover_art():
        """Set the cover art used for the next batch"""
        registry = _services()['registry']

        image = request.files.get('image')
        if image is not None:
            data = image.read()
            if not data or is_corrupted_image(data):
                return jsonify({'error': 'Uploaded image is not a valid picture'}), 400
            ref = UrlCoverArt(registry.store_blob(data))
        else:
            data = request.get_json(silent=True) or {}
            if 'art' not in data:
                return jsonify({'error': 'No cover art provided'}), 400
            if data['art'] is None:
                registry.store_cover_art(None)
                return jsonify({'status': 'success', 'coverArt': None})
            ref = cover_art_ref_from_value(data['art'])
            if ref is None:
                return jsonify({'error': 'Cover art must be a data URI or an http(s) URL'}), 400

        registry.store_cover_art(ref)
        logger.info(f"Stored cover art ({type(ref).__name__})")
        return jsonify({'status': 'success', 'coverArt': getattr(ref, 'url', 'data')})


# ====================
# PROCESSING ENDPOINTS
# ====================

def _get_job_or_404(job_id):
    job = _services()['jobs'].get(job_id)
    if job is None:
        return None, (jsonify({'error': 'Job not found'}), 404)
    return job, None


def _register_process_routes(app):

    @app.route('/process', methods=['POST'])
    def start_processing():
        """Start a batch over the selected files"""
        services = _services()
        registry = services['registry']
        data = request.get_json(silent=True) or {}

        file_ids = data.get('fileIds')
        if file_ids is not None and (
            not isinstance(file_ids, list) or not all(isinstance(file_id, str) for file_id in file_ids)
        ):
            return jsonify({'error': 'fileIds must be a list of file ids'}), 400
        file_ids = file_ids or registry.ids()
        if not file_ids:
            return jsonify({'error': 'No files selected'}), 400

        template = data.get('filenameTemplate') or DEFAULT_FILENAME_TEMPLATE
        if template not in FILENAME_TEMPLATES:
            return jsonify({'error': f'Unknown filename template: {template}'}), 400

        metadata = data.get('metadata') or {}
        individual = data.get('individualMetadata') or {}
        if not isinstance(metadata, dict) or not isinstance(individual, dict):
            return jsonify({'error': 'metadata and individualMetadata must be objects'}), 400

        found, missing = registry.resolve(file_ids)
        if missing:
            logger.warning(f"Process request references {len(missing)} unavailable files")
            return jsonify({
                'error': 'Some files are no longer available, please select them again',
                'missing': missing
            }), 409

        if 'cover' in data:
            cover = cover_art_ref_from_value(data['cover']) if data['cover'] is not None else None
        else:
            cover = registry.get_cover_art()

        options = BatchOptions(
            cover=cover,
            per_file_overrides={
                name: normalize_fields(fields) for name, fields in individual.items() if isinstance(fields, dict)
            },
            filename_template=template,
            require_cover=bool(data.get('requireCover', False)),
            keep_existing_cover=bool(data.get('keepExistingCover', False)),
            file_ids=[file_id for file_id, _ in found],
            blob_lookup=registry.get_blob
        )

        job = services['jobs'].submit([handle for _, handle in found], normalize_fields(metadata), options)
        return jsonify({'status': 'accepted', 'jobId': job.id, 'total': len(found)}), 202

    @app.route('/process/<job_id>')
    def get_job(job_id):
        job, error = _get_job_or_404(job_id)
        if error:
            return error
        return jsonify(job.to_dict())

    @app.route('/process/<job_id>/cancel', methods=['POST'])
    def cancel_job(job_id):
        job, error = _get_job_or_404(job_id)
        if error:
            return error
        job.cancel()
        return jsonify({'status': 'success', 'finished': job.finished})

    @app.route('/process/<job_id>/files/<file_id>')
    def download_file(job_id, file_id):
        """Download one rewritten file"""
        job, error = _get_job_or_404(job_id)
        if error:
            return error

        result = job.get_result(file_id)
        if result is None:
            return jsonify({'error': 'File not found in this job'}), 404
        if not result.success:
            return jsonify({'error': result.error, 'status': result.status.value}), 409

        return send_file(
            BytesIO(result.output),
            mimetype='audio/mpeg',
            as_attachment=True,
            download_name=result.new_name
        )

    @app.route('/process/<job_id>/archive')
    def download_archive(job_id):
        """Download every successful file of a job as a ZIP"""
        job, error = _get_job_or_404(job_id)
        if error:
            return error
        if not job.finished:
            return jsonify({'error': 'Job is still running'}), 409

        successful = [r for r in job.results if r.success]
        if not successful:
            return jsonify({'error': 'No files were processed successfully'}), 404

        return send_file(
            BytesIO(build_zip(successful)),
            mimetype='application/zip',
            as_attachment=True,
            download_name=f'retagged_music_{len(successful)}_files.zip'
        )


# =================
# HISTORY ENDPOINTS
# =================

def _register_history_routes(app):

    @app.route('/history')
    def get_history():
        """Get all processing summaries, newest first"""
        return jsonify({'runs': _services()['summaries'].get_all()})

    @app.route('/history/clear', methods=['POST'])
    def clear_history():
        """Clear all processing summaries"""
        try:
            _services()['summaries'].clear()
            return jsonify({
                'status': 'success',
                'message': 'History cleared successfully'
            })
        except Exception as e:
            logger.error(f"Error clearing history: {e}")
            return jsonify({'error': str(e)}), 500


app = create_app()

if __name__ == '__main__':
    app.run(host=HOST, port=PORT, debug=False)
