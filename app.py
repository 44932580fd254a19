"""Bovali AI Studio web app.

All studio state (uploads, outputs, chat transcript) lives in the single
module-level ``studio``, shared by every browser that connects. This is a
local single-user tool; do not deploy it as a multi-user service.
"""
import io
import logging
import os
import time

from dotenv import load_dotenv
from flask import Flask, abort, jsonify, request, send_file

from gemini_service import MissingImageError
from models import PanelStatus
from studio import InvalidSelectionError, Studio, StudioBusyError
from uploader import UploadError, read_upload

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

studio = Studio()


def _payload():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _state():
    return studio.snapshot()


@app.errorhandler(InvalidSelectionError)
@app.errorhandler(UploadError)
def handle_bad_input(e):
    return jsonify({"error": str(e)}), 400


@app.errorhandler(StudioBusyError)
def handle_busy(e):
    return jsonify({"error": str(e)}), 409


@app.route("/")
def index():
    return HTML_PAGE


@app.route("/api/state")
def state():
    return jsonify(_state())


@app.route("/api/tab", methods=["POST"])
def set_tab():
    studio.set_tab(_payload().get("tab"))
    return jsonify(_state())


@app.route("/api/generator/mode", methods=["POST"])
def set_generation_mode():
    studio.set_generation_mode(_payload().get("mode"))
    return jsonify(_state())


@app.route("/api/generator/surface", methods=["POST"])
def set_surface_type():
    studio.set_surface_type(_payload().get("surface"))
    return jsonify(_state())


@app.route("/api/extractor/type", methods=["POST"])
def set_extraction_type():
    studio.set_extraction_type(_payload().get("type"))
    return jsonify(_state())


@app.route("/api/images/<slot>", methods=["POST"])
def upload_image(slot):
    if "file" not in request.files:
        return jsonify({"error": "No file uploaded"}), 400
    image = read_upload(request.files["file"])
    studio.select_image(slot, image)
    return jsonify(_state())


@app.route("/api/images/<slot>", methods=["DELETE"])
def remove_image(slot):
    studio.remove_image(slot)
    return jsonify(_state())


@app.route("/previews/<token>")
def preview(token):
    image = studio.previews.get(token)
    if image is None:
        abort(404)
    return send_file(io.BytesIO(image.data), mimetype=image.mime_type)


def _panel_response(panel, started):
    elapsed = round(time.time() - started, 1)
    if panel.status is PanelStatus.FAILED:
        return jsonify({"error": panel.error, "elapsed": elapsed, "state": _state()}), 502
    return jsonify({"image": panel.output_image, "elapsed": elapsed, "state": _state()})


@app.route("/api/generator/generate", methods=["POST"])
def generate():
    data = _payload()
    start = time.time()
    try:
        panel = studio.generate(
            data.get("width", ""),
            data.get("height", ""),
            data.get("unit", "cm"),
        )
    except MissingImageError as e:
        return jsonify({"error": str(e), "state": _state()}), 400
    return _panel_response(panel, start)


@app.route("/api/extractor/process", methods=["POST"])
def process_image():
    data = _payload()
    start = time.time()
    try:
        panel = studio.process(
            data.get("width", ""),
            data.get("height", ""),
            data.get("unit", "cm"),
        )
    except MissingImageError as e:
        return jsonify({"error": str(e), "state": _state()}), 400
    return _panel_response(panel, start)


@app.route("/api/extractor/download")
def download_processed():
    download = studio.download_processed()
    if download is None:
        return jsonify({"error": "No processed image to download"}), 404
    png_bytes, filename = download
    return send_file(
        io.BytesIO(png_bytes),
        mimetype="image/png",
        as_attachment=True,
        download_name=filename,
    )


@app.route("/api/chat", methods=["POST"])
def chat():
    message = _payload().get("message", "")
    start = time.time()
    reply = studio.send_message(message)
    elapsed = round(time.time() - start, 1)
    return jsonify({"reply": reply.to_dict(), "elapsed": elapsed, "state": _state()})


@app.route("/api/chat/reset", methods=["POST"])
def reset_chat():
    studio.reset_chat()
    return jsonify(_state())


HTML_PAGE = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Bovali AI Studio</title>
<style>
  *, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }

  body {
    font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
    background: #f4efe6;
    color: #2b2b2b;
    min-height: 100vh;
  }

  header {
    background: #2f4a3a;
    color: #f4efe6;
    text-align: center;
    padding: 40px 24px 32px;
  }
  header h1 { font-family: Georgia, serif; font-size: 2.4rem; font-weight: 400; }
  header p { margin-top: 10px; font-size: 0.95rem; opacity: 0.8; }

  main { max-width: 1100px; margin: 0 auto; padding: 28px 24px 120px; }

  .tabs, .choices { display: flex; gap: 10px; justify-content: center; margin-bottom: 24px; }

  .section { margin-bottom: 28px; }
  .section h2 {
    font-family: Georgia, serif;
    font-weight: 400;
    font-size: 1.3rem;
    text-align: center;
    margin-bottom: 14px;
  }

  button {
    background: #ffffff;
    color: #2b2b2b;
    border: 1px solid #d8d2c6;
    border-radius: 8px;
    padding: 8px 20px;
    font-size: 0.85rem;
    font-weight: 500;
    cursor: pointer;
    transition: background 0.2s, opacity 0.2s;
  }
  button:hover { background: #ece6da; }
  button.active, button.primary { background: #2f4a3a; color: #fff; border-color: #2f4a3a; }
  button:disabled { opacity: 0.5; cursor: not-allowed; }

  .uploaders { display: grid; grid-template-columns: repeat(auto-fit, minmax(240px, 1fr)); gap: 18px; }

  .uploader h3 { font-family: Georgia, serif; font-weight: 400; text-align: center; margin-bottom: 8px; }
  .drop {
    position: relative;
    height: 260px;
    border: 2px dashed #cfc8ba;
    border-radius: 10px;
    background: #fff;
    display: flex;
    align-items: center;
    justify-content: center;
    cursor: pointer;
    overflow: hidden;
  }
  .drop img { width: 100%; height: 100%; object-fit: contain; }
  .drop .hint { color: #8a857c; font-size: 0.85rem; text-align: center; }
  .drop input { display: none; }
  .remove-btn {
    position: absolute;
    top: 10px; right: 10px;
    background: rgba(0,0,0,0.5);
    color: #fff;
    border: none;
    border-radius: 50%;
    padding: 2px 9px;
  }

  .dims { display: flex; gap: 10px; justify-content: center; align-items: center; }
  .dims input, .dims select {
    width: 100px;
    padding: 8px;
    border: 1px solid #cfc8ba;
    border-radius: 6px;
    background: #fff;
  }

  .output-card {
    background: #fff;
    border: 1px solid #d8d2c6;
    border-radius: 10px;
    padding: 16px;
    white-space: pre-wrap;
    word-break: break-word;
    display: none;
    text-align: center;
  }
  .output-card.visible { display: block; }
  .output-card.error { border-color: #ef4444; color: #b91c1c; background: #fdf2f2; }
  .output-card img { max-width: 100%; border-radius: 8px; }

  .status { font-size: 0.78rem; color: #8a857c; min-height: 1.2em; text-align: center; margin-top: 6px; }

  .loading { display: flex; align-items: center; justify-content: center; gap: 10px; color: #8a857c; }
  .spinner {
    width: 16px; height: 16px;
    border: 2px solid #d8d2c6;
    border-top-color: #2f4a3a;
    border-radius: 50%;
    animation: spin 0.8s linear infinite;
  }
  @keyframes spin { to { transform: rotate(360deg); } }

  .hidden { display: none !important; }

  /* ── Chat ── */

  .chat-toggle {
    position: fixed;
    bottom: 24px; right: 24px;
    background: #2f4a3a; color: #fff;
    border-radius: 999px;
    padding: 12px 20px;
  }
  .chat {
    position: fixed;
    bottom: 80px; right: 24px;
    width: 360px; height: 60vh;
    background: #fff;
    border-radius: 12px;
    box-shadow: 0 4px 24px rgba(0,0,0,0.25);
    display: flex;
    flex-direction: column;
    z-index: 1000;
  }
  .chat-header { background: #2f4a3a; color: #fff; padding: 12px 16px; border-radius: 12px 12px 0 0; display: flex; justify-content: space-between; }
  .chat-header button { background: none; color: #fff; border: none; font-size: 1.2rem; padding: 0; }
  .chat-body { flex: 1; overflow-y: auto; padding: 12px; background: #f4efe6; }
  .msg { max-width: 80%; padding: 8px 12px; border-radius: 8px; margin-bottom: 8px; font-size: 0.85rem; white-space: pre-wrap; }
  .msg.user { margin-left: auto; background: #2f4a3a; color: #fff; }
  .msg.bot { background: #fff; }
  .chat form { display: flex; border-top: 1px solid #e5e0d6; }
  .chat input { flex: 1; padding: 10px; border: none; outline: none; }
  .chat form button { border-radius: 0 0 12px 0; }
</style>
</head>
<body>

<header>
  <h1>Bovali AI Studio</h1>
  <p>Bespoke flooring and wall cladding, visualised.</p>
</header>

<main>
  <div class="tabs">
    <button id="tab-generator" onclick="setTab('generator')">Generator Studio</button>
    <button id="tab-extractor" onclick="setTab('extractor')">Extractor Studio</button>
  </div>

  <!-- ── Generator Studio ── -->
  <div id="generator">
    <div class="section">
      <h2>1. Select Surface Type</h2>
      <div class="choices">
        <button data-surface="Flooring" onclick="post('/api/generator/surface', {surface: 'Flooring'})">Flooring</button>
        <button data-surface="Walls" onclick="post('/api/generator/surface', {surface: 'Walls'})">Walls</button>
      </div>
    </div>
    <div class="section">
      <h2>2. Select Generation Mode</h2>
      <div class="choices">
        <button data-mode="PatternAndMaterial" onclick="post('/api/generator/mode', {mode: 'PatternAndMaterial'})">Apply Pattern &amp; Material</button>
        <button data-mode="PatternOnly" onclick="post('/api/generator/mode', {mode: 'PatternOnly'})">Apply Pattern Only</button>
        <button data-mode="MaterialOnly" onclick="post('/api/generator/mode', {mode: 'MaterialOnly'})">Apply Material Only</button>
      </div>
    </div>
    <div class="section">
      <h2>3. Upload Your Images</h2>
      <div id="generatorSlots" class="uploaders"></div>
    </div>
    <div class="section" id="tileSection">
      <h2>4. Specify Tile Dimensions (Optional)</h2>
      <div class="dims">
        <input id="tileWidth" type="number" placeholder="e.g., 60" aria-label="Tile width">
        <span>x</span>
        <input id="tileHeight" type="number" placeholder="e.g., 120" aria-label="Tile height">
        <select id="tileUnit"><option value="cm">cm</option><option value="inches">inches</option></select>
      </div>
    </div>
    <div class="choices">
      <button id="generateBtn" class="primary" onclick="generate()">Generate Design</button>
    </div>
    <div id="generatorOutput" class="output-card"></div>
    <div id="generatorStatus" class="status"></div>
  </div>

  <!-- ── Extractor Studio ── -->
  <div id="extractor" class="hidden">
    <div class="section">
      <h2>1. Upload Your Photo</h2>
      <div id="extractorSlots" class="uploaders"></div>
    </div>
    <div class="section">
      <h2>2. Select Extraction Type</h2>
      <div class="choices">
        <button data-extraction="Pattern" onclick="post('/api/extractor/type', {type: 'Pattern'})">Pattern</button>
        <button data-extraction="Material" onclick="post('/api/extractor/type', {type: 'Material'})">Material</button>
      </div>
    </div>
    <div class="section">
      <h2>3. Dimensions (Optional)</h2>
      <div class="dims">
        <input id="sourceWidth" type="number" placeholder="e.g., 60" aria-label="Source width">
        <span>x</span>
        <input id="sourceHeight" type="number" placeholder="e.g., 120" aria-label="Source height">
        <select id="sourceUnit"><option value="cm">cm</option><option value="inches">inches</option></select>
      </div>
    </div>
    <div class="choices">
      <button id="processBtn" class="primary" onclick="processImage()">Process Image</button>
    </div>
    <div id="extractorOutput" class="output-card"></div>
    <div class="choices"><a id="downloadLink" class="hidden" href="/api/extractor/download"><button>Download Image</button></a></div>
    <div id="extractorStatus" class="status"></div>
  </div>
</main>

<button class="chat-toggle" onclick="toggleChat()">Design Assistant</button>
<div id="chat" class="chat hidden">
  <div class="chat-header"><strong>Bovali Design Assistant</strong><span><button onclick="resetChat()" title="New conversation">&#8634;</button> <button onclick="toggleChat()">&times;</button></span></div>
  <div id="chatBody" class="chat-body"></div>
  <form onsubmit="sendChat(event)">
    <input id="chatInput" type="text" placeholder="Ask a design question..." autocomplete="off">
    <button type="submit" class="primary">Send</button>
  </form>
</div>

<script>
  let state = null;

  async function callApi(url, options) {
    const res = await fetch(url, options);
    const data = await res.json();
    if (data.state) render(data.state);
    else if (res.ok && data.active_tab) render(data);
    if (!res.ok || data.error) throw new Error(data.error || 'HTTP ' + res.status);
    return data;
  }

  function post(url, body) {
    return callApi(url, {
      method: 'POST',
      headers: { 'Content-Type': 'application/json' },
      body: JSON.stringify(body || {}),
    }).catch(e => showStatus(currentPanel(), e.message));
  }

  function currentPanel() { return state ? state.active_tab : 'generator'; }

  function showStatus(panel, text) {
    document.getElementById(panel + 'Status').textContent = text || '';
  }

  function setTab(tab) { post('/api/tab', { tab }); }

  function uploadImage(slot, input) {
    if (!input.files || !input.files[0]) return;
    const form = new FormData();
    form.append('file', input.files[0]);
    callApi('/api/images/' + slot, { method: 'POST', body: form })
      .catch(e => showStatus(currentPanel(), e.message));
  }

  function removeImage(slot, event) {
    event.preventDefault();
    event.stopPropagation();
    callApi('/api/images/' + slot, { method: 'DELETE' })
      .catch(e => showStatus(currentPanel(), e.message));
  }

  function renderSlots(containerId, slots) {
    const container = document.getElementById(containerId);
    container.innerHTML = '';
    Object.entries(slots).forEach(([slot, view]) => {
      const card = document.createElement('div');
      card.className = 'uploader';
      const title = document.createElement('h3');
      title.textContent = view.title;
      const drop = document.createElement('label');
      drop.className = 'drop';
      if (view.preview_url) {
        const img = document.createElement('img');
        img.src = view.preview_url;
        img.alt = view.title + ' preview';
        drop.appendChild(img);
        const rm = document.createElement('button');
        rm.className = 'remove-btn';
        rm.setAttribute('aria-label', 'Remove image');
        rm.innerHTML = '&times;';
        rm.addEventListener('click', e => removeImage(slot, e));
        drop.appendChild(rm);
      } else {
        const hint = document.createElement('div');
        hint.className = 'hint';
        hint.innerHTML = '<strong>Click to upload</strong><br>PNG, JPG, or WEBP';
        drop.appendChild(hint);
      }
      const input = document.createElement('input');
      input.type = 'file';
      input.accept = 'image/png, image/jpeg, image/webp';
      input.addEventListener('change', () => uploadImage(slot, input));
      drop.appendChild(input);
      card.appendChild(title);
      card.appendChild(drop);
      container.appendChild(card);
    });
  }

  function renderPanel(panel, view, loadingText) {
    const out = document.getElementById(panel + 'Output');
    out.innerHTML = '';
    out.className = 'output-card';
    if (view.loading) {
      out.className = 'output-card visible';
      out.innerHTML = '<div class="loading"><div class="spinner"></div>' + loadingText + '</div>';
    } else if (view.error) {
      out.className = 'output-card visible error';
      out.textContent = view.error;
    } else if (view.output_image) {
      const img = document.createElement('img');
      img.src = view.output_image;
      out.appendChild(img);
      out.className = 'output-card visible';
    }
  }

  function markActive(attr, value) {
    document.querySelectorAll('[' + attr + ']').forEach(btn => {
      btn.classList.toggle('active', btn.getAttribute(attr) === value);
    });
  }

  function render(next) {
    state = next;
    const gen = state.generator, ext = state.extractor;

    document.getElementById('tab-generator').classList.toggle('active', state.active_tab === 'generator');
    document.getElementById('tab-extractor').classList.toggle('active', state.active_tab === 'extractor');
    document.getElementById('generator').classList.toggle('hidden', state.active_tab !== 'generator');
    document.getElementById('extractor').classList.toggle('hidden', state.active_tab !== 'extractor');

    markActive('data-surface', gen.surface_type);
    markActive('data-mode', gen.generation_mode);
    markActive('data-extraction', ext.extraction_type);

    renderSlots('generatorSlots', gen.slots);
    renderSlots('extractorSlots', ext.slots);

    document.getElementById('tileSection').classList.toggle('hidden', gen.generation_mode === 'MaterialOnly');
    document.getElementById('tileWidth').value = gen.tile_width;
    document.getElementById('tileHeight').value = gen.tile_height;
    document.getElementById('tileUnit').value = gen.tile_unit;

    const genBtn = document.getElementById('generateBtn');
    genBtn.disabled = !gen.can_generate;
    genBtn.textContent = gen.loading ? 'Generating...' : 'Generate Design';
    renderPanel('generator', gen, 'The AI is working its magic... This can take a moment.');

    const procBtn = document.getElementById('processBtn');
    procBtn.disabled = !ext.can_process;
    procBtn.textContent = ext.loading ? 'Processing...' : 'Process Image';
    renderPanel('extractor', ext, 'AI is processing your image...');
    document.getElementById('downloadLink').classList.toggle('hidden', !ext.output_image);

    renderChat(state.chat);
  }

  async function runPanel(panel, url, body) {
    const started = Date.now();
    showStatus(panel, '');
    const out = document.getElementById(panel + 'Output');
    out.className = 'output-card visible';
    out.innerHTML = '<div class="loading"><div class="spinner"></div>Working...</div>';
    try {
      const data = await callApi(url, {
        method: 'POST',
        headers: { 'Content-Type': 'application/json' },
        body: JSON.stringify(body),
      });
      showStatus(panel, 'Completed in ' + data.elapsed + 's');
    } catch (e) {
      showStatus(panel, ((Date.now() - started) / 1000).toFixed(1) + 's');
    }
  }

  function generate() {
    document.getElementById('generateBtn').disabled = true;
    runPanel('generator', '/api/generator/generate', {
      width: document.getElementById('tileWidth').value,
      height: document.getElementById('tileHeight').value,
      unit: document.getElementById('tileUnit').value,
    });
  }

  function processImage() {
    document.getElementById('processBtn').disabled = true;
    runPanel('extractor', '/api/extractor/process', {
      width: document.getElementById('sourceWidth').value,
      height: document.getElementById('sourceHeight').value,
      unit: document.getElementById('sourceUnit').value,
    });
  }

  // ── Chat ──
  const chatBody = document.getElementById('chatBody');
  const chatInput = document.getElementById('chatInput');

  function toggleChat() { document.getElementById('chat').classList.toggle('hidden'); }

  function resetChat() { post('/api/chat/reset'); }

  function renderChat(chat, pending) {
    chatBody.innerHTML = '';
    chat.messages.forEach(m => {
      const el = document.createElement('div');
      el.className = 'msg ' + m.sender;
      el.textContent = m.text;
      chatBody.appendChild(el);
    });
    if (pending) {
      const user = document.createElement('div');
      user.className = 'msg user';
      user.textContent = pending;
      chatBody.appendChild(user);
    }
    if (chat.bot_typing || pending) {
      const typing = document.createElement('div');
      typing.className = 'msg bot';
      typing.innerHTML = '<div class="loading"><div class="spinner"></div></div>';
      chatBody.appendChild(typing);
    }
    chatBody.scrollTop = chatBody.scrollHeight;
  }

  async function sendChat(event) {
    event.preventDefault();
    const message = chatInput.value.trim();
    if (!message) return;
    chatInput.value = '';
    renderChat(state.chat, message);
    try {
      await callApi('/api/chat', {
        method: 'POST',
        headers: { 'Content-Type': 'application/json' },
        body: JSON.stringify({ message }),
      });
    } catch (e) {
      renderChat(state.chat);
    }
  }

  callApi('/api/state').catch(e => showStatus('generator', e.message));
</script>
</body>
</html>
"""

if __name__ == "__main__":
    app.run(debug=True, port=int(os.getenv("PORT", "5001")), threaded=True)
