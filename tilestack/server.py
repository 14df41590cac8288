"""
Tile Server - HTTP endpoint for reading and storing tiles
"""

import os
from pathlib import Path

from flask import Flask, abort, jsonify, request, send_file
from werkzeug.utils import safe_join

MIMETYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.tif': 'image/tiff',
    '.tiff': 'image/tiff',
    '.gif': 'image/gif',
    '.bmp': 'image/bmp',
    '.webp': 'image/webp',
}


def create_app(root_dir):
    """
    Create Flask app serving a tile set directory.

    Tiles are read with GET and stored with POST below /tiles/, so a stack
    can be exported to http://host:port/tiles/ and read back from there.

    Args:
        root_dir: directory holding the tile set

    Returns:
        Flask app
    """
    app = Flask(__name__)
    root = Path(root_dir)
    root.mkdir(parents=True, exist_ok=True)

    def tile_file(location):
        path = safe_join(str(root), location)
        if path is None:
            abort(400)
        return Path(path)

    @app.route('/health')
    def health():
        """Health check endpoint."""
        return jsonify({'status': 'ok'})

    @app.route('/tiles')
    def list_tiles():
        """List all stored tile paths."""
        tiles = sorted(
            str(p.relative_to(root)).replace(os.sep, '/')
            for p in root.rglob('*') if p.is_file())
        return jsonify({'tiles': tiles})

    @app.route('/tiles/<path:location>', methods=['GET'])
    def get_tile(location):
        """Return the encoded tile bytes."""
        path = tile_file(location)
        if not path.is_file():
            return jsonify({'error': f'Tile {location} not found'}), 404
        mimetype = MIMETYPES.get(path.suffix.lower(), 'application/octet-stream')
        return send_file(path.resolve(), mimetype=mimetype)

    @app.route('/tiles/<path:location>', methods=['POST'])
    def store_tile(location):
        """Store the request body as a tile."""
        data = request.get_data()
        if not data:
            return jsonify({'error': 'Empty tile'}), 400
        path = tile_file(location)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'wb') as f:
            f.write(data)
        return jsonify({'stored': location, 'size': len(data)}), 201

    return app


def run_server(root_dir, host='0.0.0.0', port=5000, debug=False):
    """
    Run the tile server.

    Args:
        root_dir: directory holding the tile set
        host: Host to bind to
        port: Port to bind to
        debug: Enable debug mode
    """
    app = create_app(root_dir)
    app.run(host=host, port=port, debug=debug)
