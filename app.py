from flask import Flask, jsonify, render_template, request

from kot_engine import OutputBuffer, analyze_kot_code, route_terminal_command, run_kot_code
from settings import log_debug, server_address

app = Flask(__name__)


def _is_scalar(item):
    # JSON null, booleans, arrays and objects are not usable input lines.
    return isinstance(item, (str, int, float)) and not isinstance(item, bool)


@app.route("/")
def index():
    return render_template("index.html")


@app.route("/run", methods=["POST"])
def run_code():
    payload = request.get_json(force=True, silent=True) or {}
    code = payload.get("code", "")
    inputs = payload.get("inputs", [])
    if not code.strip():
        return jsonify({"ok": False, "error": "No code provided."}), 400
    if not isinstance(inputs, list) or not all(_is_scalar(item) for item in inputs):
        return jsonify({"ok": False, "error": "inputs must be a list of strings."}), 400

    result = run_kot_code(code, [str(item) for item in inputs], payload.get("arithmetic"))
    log_debug(f"/run finished ok={result.get('ok')} lines={len(result.get('lines', []))}")
    status = 200 if result.get("ok") else 400
    return jsonify(result), status


@app.route("/analyze", methods=["POST"])
def analyze_code():
    payload = request.get_json(force=True, silent=True) or {}
    code = payload.get("code", "")
    analysis = analyze_kot_code(code)
    status = 200 if analysis.get("ok") else 400
    return jsonify(analysis), status


@app.route("/terminal", methods=["POST"])
def terminal():
    payload = request.get_json(force=True, silent=True) or {}
    command = payload.get("command") or ""

    output = OutputBuffer()
    for line in payload.get("output") or []:
        output.append(str(line))
    route_terminal_command(command, output)
    return jsonify({"ok": True, "output": output.lines}), 200


if __name__ == "__main__":
    host, port = server_address()
    app.run(host=host, port=port, debug=True, use_reloader=False)
