#!/usr/bin/env python3
"""
AtlasGuessr

Where in Morocco is this? Upload one or more photos and Gemini guesses the
region, the nearest town and the coordinates, with the visual clues it used.

Features:
  - Multi-image upload (several angles of the same place are cross-referenced)
  - Strict JSON schema contract (default) or Google Search grounded contract
  - Map marker and Google Maps deep link for the guessed coordinates
  - Per-browser session state: idle, loading, result, error

Usage:
  1. pip install -e .
  2. Create .env file with GEMINI_API_KEY=your_key
  3. python app.py
  4. Open http://localhost:5847
"""

import os
import uuid
import logging
import threading
from collections import OrderedDict
from functools import partial
from typing import Optional, Tuple

from flask import Flask, request, jsonify, Response
from dotenv import load_dotenv

from locator import (
    LocationAnalyzer,
    ResponseContract,
    UploadController,
    read_upload,
)
from locator.prompts import describe_contract

# Load environment variables from .env file
load_dotenv()

# Configuration
API_KEY = os.environ.get("GEMINI_API_KEY", "")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
ANALYSIS_CONTRACT = os.environ.get("ANALYSIS_CONTRACT", "schema").strip().lower()
THINKING_BUDGET = int(os.environ.get("THINKING_BUDGET", 16384))
MAX_IMAGE_DIMENSION = int(os.environ.get("MAX_IMAGE_DIMENSION", 2000))
READ_WORKERS = int(os.environ.get("READ_WORKERS", 4))
MAX_SESSIONS = max(1, int(os.environ.get("MAX_SESSIONS", 256)))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

if ANALYSIS_CONTRACT not in {c.value for c in ResponseContract}:
    print(f"Warning: unknown ANALYSIS_CONTRACT '{ANALYSIS_CONTRACT}', using 'schema'")
    ANALYSIS_CONTRACT = ResponseContract.SCHEMA.value

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

if not API_KEY:
    print("Note: GEMINI_API_KEY not set. Analysis requests will fail until it is configured.")


# Application Initialization
app = Flask(__name__)

# Auto-reload configuration
app.config['TEMPLATES_AUTO_RELOAD'] = True
app.config['SEND_FILE_MAX_AGE_DEFAULT'] = 0

# Initialize Gemini analyzer lazily
analyzer: Optional[LocationAnalyzer] = None


def initialize_analyzer() -> bool:
    """Initialize the Gemini analyzer with proper error handling."""
    global analyzer
    try:
        analyzer = LocationAnalyzer(
            api_key=API_KEY,
            contract=ResponseContract(ANALYSIS_CONTRACT),
            model=GEMINI_MODEL,
            thinking_budget=THINKING_BUDGET,
        )
        return True
    except Exception as e:
        logger.error(f"Failed to initialize Gemini analyzer: {format_error_message(e)}")
        return False


# Session storage: one controller per browser tab, least recently used evicted first
sessions: "OrderedDict[str, UploadController]" = OrderedDict()
sessions_lock = threading.Lock()


def find_session(session_id: Optional[str]) -> Optional[UploadController]:
    """Look up a session and mark it as recently used."""
    with sessions_lock:
        controller = sessions.get(session_id) if session_id else None
        if controller is not None:
            sessions.move_to_end(session_id)
        return controller


def get_or_create_session(session_id: Optional[str]) -> Tuple[str, UploadController]:
    """Look up a session, creating it when the id is missing or unknown."""
    with sessions_lock:
        if session_id and session_id in sessions:
            sessions.move_to_end(session_id)
            return session_id, sessions[session_id]

        session_id = session_id or str(uuid.uuid4())
        controller = UploadController(
            analyzer,
            read_file=partial(read_upload, max_size=MAX_IMAGE_DIMENSION),
            max_workers=READ_WORKERS,
        )
        sessions[session_id] = controller
        while len(sessions) > MAX_SESSIONS:
            evicted_id, _ = sessions.popitem(last=False)
            logger.info(f"Evicted idle session {evicted_id}")
        return session_id, controller


def format_error_message(error: Exception) -> str:
    """Convert exceptions to short, readable hints for the logs."""
    error_str = str(error).lower()

    if "permission_denied" in error_str or "api key" in error_str:
        return "API key is invalid or lacks required permissions. Check your GEMINI_API_KEY."
    elif "resource_exhausted" in error_str or "quota" in error_str:
        return "API quota exceeded. Please wait a moment and try again."
    elif "safety" in error_str or "blocked" in error_str:
        return "Content was blocked by safety filters."
    elif "deadline" in error_str or "timeout" in error_str:
        return "Request timed out. Grounded analysis with a large thinking budget can be slow."
    elif "not found" in error_str:
        return "Model not available. Check GEMINI_MODEL."
    else:
        return f"Analysis failed: {str(error)}"


# API Endpoints

@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "client_initialized": analyzer is not None,
        "model": GEMINI_MODEL,
        **describe_contract(ANALYSIS_CONTRACT),
    })


@app.route('/api/session/new', methods=['POST'])
def create_session():
    """Create a new session for one browser tab."""
    session_id, _ = get_or_create_session(None)
    return jsonify({"session_id": session_id})


@app.route('/api/session/<session_id>', methods=['GET'])
def get_session(session_id):
    """Current state of a session."""
    controller = find_session(session_id)
    if controller is None:
        return jsonify({"success": False, "error": "Unknown session"}), 404
    return jsonify({"success": True, "session_id": session_id, **controller.to_dict()})


@app.route('/api/session/reset', methods=['POST'])
def reset_session():
    """Return a session to the empty-selection state."""
    data = request.get_json(silent=True) or {}
    session_id, controller = get_or_create_session(data.get('session_id'))
    controller.reset()
    return jsonify({"success": True, "session_id": session_id, **controller.to_dict()})


@app.route('/api/analyze', methods=['POST'])
def analyze_images():
    """
    Locate the uploaded photos.

    Multipart form:
        images: one or more image files
        session_id: optional; a new session is created when absent
    """
    files = [f for f in request.files.getlist('images') if f and f.filename]
    if not files:
        return jsonify({
            "success": False,
            "error": "Please select at least one image."
        }), 400

    session_id, controller = get_or_create_session(request.form.get('session_id'))

    # Ensure analyzer is initialized
    if analyzer is None and not initialize_analyzer():
        controller.fail("Failed to initialize Gemini client. Check your API key and dependencies.")
        return jsonify({
            "success": False,
            "session_id": session_id,
            **controller.to_dict(),
        }), 503

    controller.analyzer = analyzer

    logger.info(f"Session {session_id}: analyzing {len(files)} upload(s)")
    controller.process_files(files)
    snapshot = controller.to_dict()

    return jsonify({
        "success": snapshot["error"] is None,
        "session_id": session_id,
        **snapshot,
    })


# Main Page

@app.route('/')
def index():
    """Serve the main application page."""
    return Response(HTML_PAGE, mimetype='text/html')


# Embedded HTML/CSS/JS

HTML_PAGE = '''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>AtlasGuessr</title>
    <link href="https://fonts.googleapis.com/css2?family=Libre+Baskerville:wght@400;700&family=Inter:wght@400;500;600&display=swap" rel="stylesheet">
    <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css">
    <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
    <style>
        :root {
            --bg-page: #fbf6ee;
            --bg-card: #ffffff;
            --sand: #e9d8b4;
            --red: #c23b22;
            --ochre: #c8841a;
            --blue: #1f4e8c;
            --green: #3d7a3a;
            --text: #1a1a1a;
            --text-secondary: #666666;
            --text-muted: #999999;
            --border: #e0ddd5;
            --radius: 12px;
            --shadow-lg: 0 4px 12px rgba(0,0,0,0.1);
        }

        * { margin: 0; padding: 0; box-sizing: border-box; }

        body {
            font-family: 'Inter', -apple-system, BlinkMacSystemFont, sans-serif;
            background: linear-gradient(135deg, var(--bg-page), #ffffff);
            color: var(--text);
            min-height: 100vh;
            line-height: 1.6;
            font-size: 15px;
        }

        nav {
            position: sticky; top: 0; z-index: 1000;
            background: rgba(255,255,255,0.85);
            border-bottom: 1px solid var(--border);
            padding: 1rem 2rem;
        }
        nav h1 { font-family: 'Libre Baskerville', serif; font-size: 1.25rem; }
        nav h1 span { color: var(--red); }

        .app { max-width: 1200px; margin: 0 auto; padding: 2rem; }
        .hidden { display: none !important; }

        .hero { text-align: center; padding: 4rem 0 2rem; }
        .hero h2 { font-family: 'Libre Baskerville', serif; font-size: 2.75rem; }
        .hero h2 span { color: var(--ochre); }
        .hero p { color: var(--text-secondary); max-width: 640px; margin: 1rem auto 0; }

        .dropzone {
            margin: 3rem auto 0; max-width: 640px; padding: 3rem;
            background: var(--bg-card); border: 2px dashed var(--border);
            border-radius: 24px; cursor: pointer; box-shadow: var(--shadow-lg);
        }
        .dropzone:hover { border-color: var(--blue); }
        .dropzone small { display: block; color: var(--text-muted); margin-top: 0.5rem; }

        .loading { text-align: center; padding: 5rem 0; }
        .spinner {
            width: 56px; height: 56px; margin: 0 auto 1.5rem;
            border: 4px solid var(--sand); border-top-color: var(--ochre);
            border-radius: 50%; animation: spin 1s linear infinite;
        }
        @keyframes spin { to { transform: rotate(360deg); } }
        .thumbs { display: flex; gap: 0.5rem; justify-content: center; margin-top: 1.5rem; flex-wrap: wrap; }
        .thumbs img { width: 56px; height: 56px; object-fit: cover; border-radius: 8px; border: 2px solid #fff; }
        .thumbs img.active { border-color: var(--blue); }

        .toolbar { display: flex; justify-content: space-between; align-items: center; margin-bottom: 1.5rem; }
        button {
            font: inherit; cursor: pointer; border: 1px solid var(--border);
            background: var(--bg-card); border-radius: 8px; padding: 0.5rem 1rem;
        }

        .result { display: flex; gap: 2rem; flex-wrap: wrap; }
        .result > div { flex: 1; min-width: 320px; }
        .main-image { position: relative; }
        .main-image img { width: 100%; height: 320px; object-fit: cover; border-radius: var(--radius); }
        .main-image .counter {
            position: absolute; top: 1rem; left: 1rem; color: #fff; font-size: 0.75rem;
            background: rgba(0,0,0,0.7); padding: 0.2rem 0.75rem; border-radius: 999px;
        }
        .main-image .prev, .main-image .next { position: absolute; top: 50%; transform: translateY(-50%); }
        .main-image .prev { left: 0.5rem; }
        .main-image .next { right: 0.5rem; }

        .map-card { position: relative; margin-top: 1.5rem; border-radius: var(--radius); overflow: hidden; }
        #map { height: 320px; }
        .map-card .coords {
            position: absolute; bottom: 1rem; left: 1rem; z-index: 500;
            background: rgba(255,255,255,0.9); padding: 0.25rem 0.5rem; border-radius: 6px; font-size: 0.75rem;
        }
        .map-card a {
            position: absolute; top: 1rem; right: 1rem; z-index: 500; color: #fff;
            background: var(--blue); padding: 0.5rem 1rem; border-radius: 8px; text-decoration: none; font-weight: 600;
        }

        .card {
            background: var(--bg-card); border-radius: var(--radius);
            box-shadow: var(--shadow-lg); padding: 1.5rem;
        }
        .headline { border-left: 8px solid var(--red); display: flex; justify-content: space-between; }
        .headline h3 { font-family: 'Libre Baskerville', serif; font-size: 1.75rem; }
        .headline h4 { color: var(--ochre); text-transform: uppercase; letter-spacing: 0.05em; }
        .confidence { text-align: center; }
        .confidence strong { display: block; font-size: 1.75rem; color: var(--blue); }
        .confidence small { font-size: 0.65rem; text-transform: uppercase; color: var(--text-muted); }
        .reasoning { font-style: italic; color: var(--text-secondary); margin-top: 1rem; }

        .clues { display: grid; grid-template-columns: repeat(auto-fill, minmax(220px, 1fr)); gap: 1rem; margin-top: 1.5rem; }
        .clue .category { font-size: 0.7rem; font-weight: 700; text-transform: uppercase; color: var(--text-muted); }
        .chips { display: flex; gap: 1rem; margin-top: 1.5rem; }
        .chip { flex: 1; text-align: center; background: rgba(233,216,180,0.3); border-radius: var(--radius); padding: 1rem; }
        .chip small { display: block; color: var(--ochre); font-weight: 700; text-transform: uppercase; font-size: 0.7rem; }
        .sources { margin-top: 1.5rem; }
        .sources a { display: block; color: var(--blue); font-size: 0.85rem; }

        .error-card {
            max-width: 440px; margin: 5rem auto; text-align: center;
            background: #fdf2f2; border: 1px solid #f5d0d0; border-radius: var(--radius); padding: 1.5rem;
        }
        .error-card h3 { color: #7f1d1d; }
        .error-card p { color: #b33a3a; font-size: 0.9rem; margin: 0.5rem 0 1.5rem; }
        .error-card button { width: 100%; color: #b33a3a; font-weight: 600; }
    </style>
</head>
<body>
    <nav><h1>Atlas<span>Guessr</span></h1></nav>

    <div class="app">
        <section id="idleView" class="hero">
            <h2>Where in <span>Morocco</span> is this?</h2>
            <p>Upload photos or street view screenshots. Soil, vegetation and architecture are analysed to pinpoint the location.</p>
            <div class="dropzone" id="dropzone">
                <strong>Click to upload images</strong>
                <small>Upload one or multiple photos for better accuracy.</small>
                <small>Supported: JPG, PNG, WEBP</small>
                <input type="file" id="fileInput" accept="image/*" multiple class="hidden">
            </div>
        </section>

        <section id="loadingView" class="loading hidden">
            <div class="spinner"></div>
            <h3>Consulting the Map...</h3>
            <p id="loadingText"></p>
            <div class="thumbs" id="loadingThumbs"></div>
        </section>

        <section id="resultView" class="hidden">
            <div class="toolbar">
                <button id="resetButton">Analyze Another</button>
                <small id="resultDate"></small>
            </div>
            <div class="result">
                <div>
                    <div class="main-image">
                        <img id="activeImage" alt="Analyzed location">
                        <span class="counter" id="imageCounter"></span>
                        <button class="prev hidden" id="prevImage">&lsaquo;</button>
                        <button class="next hidden" id="nextImage">&rsaquo;</button>
                    </div>
                    <div class="thumbs" id="resultThumbs"></div>
                    <div class="map-card">
                        <div id="map"></div>
                        <span class="coords" id="coordsLabel"></span>
                        <a id="mapsLink" target="_blank" rel="noopener noreferrer">Open in Google Maps</a>
                    </div>
                </div>
                <div>
                    <div class="card headline">
                        <div>
                            <h3 id="specificArea"></h3>
                            <h4 id="regionLabel"></h4>
                            <p class="reasoning" id="reasoning"></p>
                        </div>
                        <div class="confidence">
                            <strong id="confidenceLabel"></strong>
                            <small>Confidence</small>
                        </div>
                    </div>
                    <div class="clues" id="clues"></div>
                    <div class="chips">
                        <div class="chip"><small>Terrain</small><span id="terrainChip"></span>...</div>
                        <div class="chip"><small>Biota</small><span id="biotaChip"></span>...</div>
                    </div>
                    <div class="card sources hidden" id="sources"></div>
                </div>
            </div>
        </section>

        <section id="errorView" class="error-card hidden">
            <h3>Analysis Failed</h3>
            <p id="errorText"></p>
            <button id="tryAgainButton">Try Again</button>
        </section>
    </div>

    <script>
        const CLUE_ICONS = {
            trees: '&#127795;', mountain: '&#9968;', navigation: '&#129517;', home: '&#127968;', hexagon: '&#11042;'
        };

        let sessionId = null;
        let activeImageIndex = 0;
        let currentImages = [];
        let map = null;
        let marker = null;
        let previewUrls = [];

        const fileInput = document.getElementById('fileInput');

        function escapeHtml(text) {
            const div = document.createElement('div');
            div.textContent = text == null ? '' : String(text);
            return div.innerHTML;
        }

        function show(viewId) {
            ['idleView', 'loadingView', 'resultView', 'errorView'].forEach(function(id) {
                document.getElementById(id).classList.toggle('hidden', id !== viewId);
            });
        }

        async function ensureSession() {
            if (sessionId) return sessionId;
            const res = await fetch('/api/session/new', { method: 'POST' });
            const data = await res.json();
            sessionId = data.session_id;
            return sessionId;
        }

        function releasePreviews() {
            previewUrls.forEach(function(url) { URL.revokeObjectURL(url); });
            previewUrls = [];
        }

        function showLoading(files) {
            const count = files.length;
            document.getElementById('loadingText').textContent =
                'Analyzing ' + count + ' image' + (count > 1 ? 's' : '') +
                '. Checking soil composition, cross-referencing vegetation patterns, and calculating coordinates.';
            const thumbs = document.getElementById('loadingThumbs');
            thumbs.innerHTML = '';
            releasePreviews();
            Array.from(files).forEach(function(file) {
                const img = document.createElement('img');
                img.src = URL.createObjectURL(file);
                previewUrls.push(img.src);
                thumbs.appendChild(img);
            });
            show('loadingView');
        }

        async function processFiles(files) {
            if (!files || files.length === 0) return;
            showLoading(files);

            try {
                const form = new FormData();
                form.append('session_id', await ensureSession());
                Array.from(files).forEach(function(file) { form.append('images', file); });

                const res = await fetch('/api/analyze', { method: 'POST', body: form });
                const data = await res.json();
                if (data.session_id) sessionId = data.session_id;
                renderState(data);
            } catch (err) {
                console.error(err);
                renderState({ state: 'error', error: 'Error reading files.' });
            } finally {
                releasePreviews();
            }
        }

        function renderState(data) {
            if (data.state === 'result_ready' && data.analysis && data.images && data.images.length > 0) {
                renderResult(data);
                show('resultView');
            } else if (data.state === 'error' || data.success === false) {
                document.getElementById('errorText').textContent = data.error || 'Analysis failed.';
                show('errorView');
            } else {
                show('idleView');
            }
        }

        function setActiveImage(index) {
            activeImageIndex = (index + currentImages.length) % currentImages.length;
            document.getElementById('activeImage').src = currentImages[activeImageIndex];
            document.getElementById('imageCounter').textContent =
                'Image ' + (activeImageIndex + 1) + ' of ' + currentImages.length;
            document.querySelectorAll('#resultThumbs img').forEach(function(img, idx) {
                img.classList.toggle('active', idx === activeImageIndex);
            });
        }

        function renderResult(data) {
            const analysis = data.analysis;
            const display = data.display;

            currentImages = data.images;
            const multiple = currentImages.length > 1;
            document.getElementById('prevImage').classList.toggle('hidden', !multiple);
            document.getElementById('nextImage').classList.toggle('hidden', !multiple);
            const thumbs = document.getElementById('resultThumbs');
            thumbs.innerHTML = '';
            if (multiple) {
                currentImages.forEach(function(src, idx) {
                    const img = document.createElement('img');
                    img.src = src;
                    img.addEventListener('click', function() { setActiveImage(idx); });
                    thumbs.appendChild(img);
                });
            }
            setActiveImage(0);

            document.getElementById('resultDate').textContent = 'Analysis Complete - ' + new Date().toLocaleDateString();
            document.getElementById('specificArea').textContent = display.title;
            document.getElementById('regionLabel').textContent = display.subtitle;
            document.getElementById('reasoning').textContent = '"' + analysis.reasoning + '"';
            document.getElementById('confidenceLabel').textContent = display.confidence_label;
            document.getElementById('coordsLabel').textContent = display.coordinates_label;
            document.getElementById('mapsLink').href = display.maps_url;
            document.getElementById('terrainChip').textContent = display.terrain;
            document.getElementById('biotaChip').textContent = display.biota;

            document.getElementById('clues').innerHTML = analysis.clues.map(function(clue, idx) {
                return '<div class="card clue"><div class="category">' +
                    (CLUE_ICONS[display.clue_icons[idx]] || '') + ' ' + escapeHtml(clue.category) +
                    '</div><p>' + escapeHtml(clue.description) + '</p></div>';
            }).join('');

            const sources = document.getElementById('sources');
            const urls = analysis.groundingUrls || [];
            sources.classList.toggle('hidden', urls.length === 0);
            sources.innerHTML = '<small>Sources</small>' + urls.map(function(src) {
                return '<a href="' + escapeHtml(src.uri) + '" target="_blank" rel="noopener noreferrer">' +
                    escapeHtml(src.title) + '</a>';
            }).join('');

            // Map has to be visible before Leaflet can size itself
            show('resultView');
            const point = [analysis.coordinates.lat, analysis.coordinates.lng];
            if (!map) {
                map = L.map('map');
                L.tileLayer('https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png', {
                    attribution: '&copy; OpenStreetMap contributors'
                }).addTo(map);
            }
            map.setView(point, 6);
            if (marker) marker.remove();
            marker = L.marker(point).addTo(map);
            map.invalidateSize();
        }

        async function handleReset() {
            fileInput.value = '';
            releasePreviews();
            currentImages = [];
            activeImageIndex = 0;
            show('idleView');
            if (!sessionId) return;
            await fetch('/api/session/reset', {
                method: 'POST',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify({ session_id: sessionId })
            });
        }

        document.getElementById('dropzone').addEventListener('click', function() { fileInput.click(); });
        fileInput.addEventListener('change', function(e) { processFiles(e.target.files); });
        document.getElementById('resetButton').addEventListener('click', handleReset);
        document.getElementById('tryAgainButton').addEventListener('click', handleReset);
        document.getElementById('prevImage').addEventListener('click', function() { setActiveImage(activeImageIndex - 1); });
        document.getElementById('nextImage').addEventListener('click', function() { setActiveImage(activeImageIndex + 1); });
    </script>
</body>
</html>
'''


if __name__ == '__main__':
    # Production-ready configuration from environment
    PORT = int(os.environ.get('PORT', 5847))
    DEBUG = os.environ.get('DEBUG', 'true').lower() in ('true', '1', 'yes')
    ENVIRONMENT = os.environ.get('ENVIRONMENT', 'development')

    # Print startup banner
    print()
    print("=" * 65)
    print("  ATLASGUESSR")
    print("=" * 65)
    print()
    print(f"  Environment      : {ENVIRONMENT}")
    print(f"  Model            : {GEMINI_MODEL}")
    print(f"  Contract         : {ANALYSIS_CONTRACT}")
    print(f"  Max image side   : {MAX_IMAGE_DIMENSION or 'unlimited'}")
    print(f"  Gemini API Key   : {'Set' if API_KEY else 'Not set'}")
    print()
    print("=" * 65)
    print(f"  Starting server at: http://localhost:{PORT}")
    print(f"  Debug mode       : {'ON' if DEBUG else 'OFF'}")
    print("  Press Ctrl+C to stop")
    print("=" * 65)
    print()

    # Initialize analyzer before starting server
    if API_KEY:
        if initialize_analyzer():
            print("  Gemini client initialized successfully")
        else:
            print("  Client initialization deferred to first request")
    print()

    # Run the Flask server
    app.run(
        host='0.0.0.0',
        port=PORT,
        debug=DEBUG,
        use_reloader=DEBUG,
        threaded=True
    )
