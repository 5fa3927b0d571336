import json
import logging
import os
import threading

from flask import Flask, jsonify, request
from flask_cors import CORS

from .export import get_graph_json
from .graph import backward
from .pipeline import (
    FEATURES,
    OUTPUT_DIR,
    export_artifacts,
    model_from_payload,
    run,
    sample_loss,
)

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

_lock = threading.Lock()
_state = {"model": None, "metrics": {}}


def model_path():
    return OUTPUT_DIR / "model.json"


def metrics_path():
    return OUTPUT_DIR / "model_metrics.json"


def load_model():
    """Rebuild the last exported model, or None if there is no usable one."""
    path = model_path()
    if not path.exists():
        return None
    try:
        return model_from_payload(json.loads(path.read_text()))
    except (ValueError, KeyError, TypeError):
        logger.warning("Ignoring unreadable model file %s", path)
        return None


def load_metrics():
    """Load metrics from model_metrics.json."""
    path = metrics_path()
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text())
    except ValueError:
        logger.warning("Ignoring unreadable metrics file %s", path)
        return {}


def _ensure_loaded():
    # caller holds _lock
    if _state["model"] is None:
        _state["model"] = load_model()
        _state["metrics"] = load_metrics()
    return _state["model"]


def current_model():
    with _lock:
        return _ensure_loaded()


def parse_inputs(payload):
    inputs = payload.get("inputs")
    if not isinstance(inputs, list) or len(inputs) != len(FEATURES):
        raise ValueError(f"'inputs' must be a list of {len(FEATURES)} numbers")
    return [float(x) for x in inputs]


def error(message, code):
    return jsonify({"status": "error", "message": message}), code


@app.route("/api/status", methods=["GET"])
def status():
    """Return current model status."""
    with _lock:
        model = _ensure_loaded()
        metrics = dict(_state["metrics"])
    return jsonify(
        {
            "model_loaded": model is not None,
            "parameter_count": len(model.parameters()) if model else 0,
            "metrics": metrics,
        }
    )


@app.route("/api/train", methods=["POST"])
def train():
    """Train a new model with specified parameters."""
    try:
        payload = request.get_json(silent=True) or {}
        dataset_size = int(payload.get("dataset_size", 200))
        epochs = int(payload.get("epochs", 100))
        learning_rate = float(payload.get("learning_rate", 0.05))
        seed = int(payload.get("seed", 7))
        train_ratio = float(payload.get("train_ratio", 0.8))
        hidden = [int(h) for h in payload.get("hidden", [4, 4])]
        if dataset_size < 1 or epochs < 1 or any(h < 1 for h in hidden):
            raise ValueError("dataset_size, epochs and hidden sizes must be positive")
    except (TypeError, ValueError) as exc:
        return error(str(exc), 400)

    try:
        model, metrics, history, eval_records = run(
            dataset_size=dataset_size,
            epochs=epochs,
            learning_rate=learning_rate,
            seed=seed,
            train_ratio=train_ratio,
            hidden=hidden,
            verbose=False,
        )
        export_artifacts(model, metrics, eval_records, OUTPUT_DIR)
        with _lock:
            _state["model"] = model
            _state["metrics"] = metrics

        return jsonify(
            {
                "status": "success",
                "message": f"Training complete. Accuracy: {metrics['accuracy']:.3f}",
                "metrics": metrics,
                "loss_history": history,
            }
        )

    except ValueError as exc:
        return error(str(exc), 400)
    except Exception:
        logger.exception("Error while training model")
        return error("An internal error occurred while training the model.", 500)


@app.route("/api/infer", methods=["POST"])
def infer():
    """Run inference on provided features."""
    try:
        inputs = parse_inputs(request.get_json(silent=True) or {})
    except (TypeError, ValueError) as exc:
        return error(str(exc), 400)

    model = current_model()
    if model is None:
        return error("No model loaded", 400)

    try:
        prediction = model(inputs)
        return jsonify(
            {
                "status": "success",
                "prediction": round(prediction.data, 4),
                "label": 1 if prediction.data >= 0 else -1,
            }
        )

    except Exception:
        logger.exception("Error while running inference")
        return error("An internal error occurred while running inference.", 500)


@app.route("/api/graph", methods=["POST"])
def graph():
    """Return the gradient-annotated loss graph for one sample."""
    try:
        payload = request.get_json(silent=True) or {}
        inputs = parse_inputs(payload)
        target = float(payload.get("target", 1.0))
    except (TypeError, ValueError) as exc:
        return error(str(exc), 400)

    model = current_model()
    if model is None:
        return error("No model loaded", 400)

    try:
        record = {**dict(zip(FEATURES, inputs)), "target": target}
        annotated = backward(sample_loss(model, record))
        return jsonify(
            {
                "status": "success",
                "loss": annotated.data,
                "graph": get_graph_json(annotated),
            }
        )

    except Exception:
        logger.exception("Error while building graph")
        return error("An internal error occurred while building the graph.", 500)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    debug = os.environ.get("FLASK_DEBUG", "0") == "1"
    port = int(os.environ.get("SCALARGRAD_PORT", "5000"))
    app.run(debug=debug, port=port, host="127.0.0.1")
