import argparse
import json
import logging
import os
import random
from pathlib import Path

from .export import get_graph_json
from .graph import backward, differentiate
from .nn import MLP, mse_loss


logger = logging.getLogger(__name__)

FEATURES = ["x1", "x2", "x3"]
OUTPUT_DIR = Path(os.getenv("MODEL_OUTPUT_DIR", "artifacts"))

# The classic four-sample problem; targets are tanh-range labels.
TOY_INPUTS = [
    [2.0, 3.0, -1.0],
    [3.0, -1.0, 0.5],
    [0.5, 1.0, 1.0],
    [1.0, 1.0, -1.0],
]
TOY_TARGETS = [1.0, -1.0, -1.0, 1.0]


# Labels come from sign(RULE_BIAS + sum(RULE_WEIGHTS[f] * x[f])) plus noise.
RULE_WEIGHTS = {"x1": 1.5, "x2": -2.0, "x3": 1.0}
RULE_BIAS = 0.25


def toy_records():
    return [
        {**dict(zip(FEATURES, inputs)), "target": target}
        for inputs, target in zip(TOY_INPUTS, TOY_TARGETS)
    ]


def rule_score(record):
    return RULE_BIAS + sum(RULE_WEIGHTS[f] * record[f] for f in FEATURES)


def generate_dataset(count, seed=7, noise=0.3):
    """Samples in [-1, 1]^3 labelled +1/-1 by the noisy linear rule above."""
    rng = random.Random(seed)
    records = []

    for _ in range(count):
        record = {f: rng.uniform(-1.0, 1.0) for f in FEATURES}
        score = rule_score(record)
        if noise:
            score += rng.gauss(0, noise)
        record["target"] = 1.0 if score >= 0 else -1.0
        records.append(record)

    return records


def split_dataset(records, train_ratio=0.8, seed=7):
    if not 0.0 < train_ratio <= 1.0:
        raise ValueError(f"train_ratio must be in (0, 1], got {train_ratio}")
    rng = random.Random(seed)
    shuffled = records[:]
    rng.shuffle(shuffled)
    cutoff = int(len(shuffled) * train_ratio)
    return shuffled[:cutoff], shuffled[cutoff:]


def record_inputs(record):
    return [record[feature] for feature in FEATURES]


def sample_loss(model, record):
    prediction = model(record_inputs(record))
    return mse_loss([prediction], [record["target"]])


def train_step(model, inputs, targets, learning_rate):
    """Forward, differentiate and update once over a batch; returns the loss."""
    predictions = [model(x) for x in inputs]
    loss = mse_loss(predictions, targets)
    grads = differentiate(loss)
    model.update(grads, learning_rate)
    return loss.data


def train_model(model, train_records, epochs=100, learning_rate=0.05, verbose=True):
    """Per-sample gradient descent; returns the average loss of each epoch."""
    history = []
    log_interval = max(1, epochs // 5)
    for epoch in range(epochs):
        total_loss = 0.0
        for record in train_records:
            total_loss += train_step(
                model, [record_inputs(record)], [record["target"]], learning_rate
            )

        avg_loss = total_loss / max(1, len(train_records))
        history.append(avg_loss)
        if verbose and epoch % log_interval == 0:
            logger.info("Epoch %03d | avg loss %.4f", epoch, avg_loss)

    return history


def evaluate(model, records):
    total_loss = 0.0
    correct = 0
    for record in records:
        prediction = model(record_inputs(record)).data
        total_loss += (prediction - record["target"]) ** 2
        predicted = 1.0 if prediction >= 0 else -1.0
        if predicted == record["target"]:
            correct += 1

    return {
        "loss": total_loss / max(1, len(records)),
        "accuracy": correct / max(1, len(records)),
        "sample_count": len(records),
    }


def model_payload(model):
    return {
        "architecture": {"nin": model.nin, "nouts": model.nouts},
        "parameters": [param.data for param in model.parameters()],
    }


def model_from_payload(payload):
    architecture = payload["architecture"]
    model = MLP(architecture["nin"], architecture["nouts"])
    model.load_parameters(payload["parameters"])
    return model


def export_artifacts(model, metrics, records, output_dir=None):
    """Write model.json, model_metrics.json and graph.json; returns their paths."""
    output_dir = Path(output_dir or OUTPUT_DIR)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = {
        "model": output_dir / "model.json",
        "metrics": output_dir / "model_metrics.json",
        "graph": output_dir / "graph.json",
    }
    paths["model"].write_text(json.dumps(model_payload(model), indent=2))

    metrics_payload = {key: round(value, 4) if isinstance(value, float) else value
                       for key, value in metrics.items()}
    paths["metrics"].write_text(json.dumps(metrics_payload, indent=2))

    if records:
        annotated = backward(sample_loss(model, records[0]))
        paths["graph"].write_text(json.dumps(get_graph_json(annotated), indent=2))
    else:
        paths.pop("graph")

    return paths


def run(dataset_size=200, epochs=100, learning_rate=0.05, seed=7, train_ratio=0.8,
        hidden=(4, 4), verbose=True):
    """Build a dataset, train an MLP on it and evaluate; returns (model, metrics, history, eval_records)."""
    records = generate_dataset(dataset_size, seed=seed)
    train_records, eval_records = split_dataset(records, train_ratio=train_ratio, seed=seed)

    model = MLP(len(FEATURES), list(hidden) + [1], seed=seed)
    history = train_model(model, train_records, epochs=epochs, learning_rate=learning_rate,
                          verbose=verbose)
    metrics = evaluate(model, eval_records or train_records)
    metrics["train_size"] = len(train_records)
    return model, metrics, history, eval_records or train_records


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Train a small MLP with the scalar autograd engine and export artifacts."
    )
    parser.add_argument(
        "--dataset-size",
        type=int,
        default=200,
        help="Total number of samples to generate (default: 200)",
    )
    parser.add_argument(
        "--epochs",
        type=int,
        default=100,
        help="Number of training epochs (default: 100)",
    )
    parser.add_argument(
        "--learning-rate",
        type=float,
        default=0.05,
        help="Learning rate for gradient descent (default: 0.05)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=7,
        help="Random seed for reproducibility (default: 7)",
    )
    parser.add_argument(
        "--train-ratio",
        type=float,
        default=0.8,
        help="Fraction of data for training (default: 0.8)",
    )
    parser.add_argument(
        "--hidden",
        type=int,
        nargs="+",
        default=[4, 4],
        help="Hidden layer sizes (default: 4 4)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=OUTPUT_DIR,
        help="Where to write artifacts (default: $MODEL_OUTPUT_DIR or ./artifacts)",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress training progress output",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    model, metrics, history, eval_records = run(
        dataset_size=args.dataset_size,
        epochs=args.epochs,
        learning_rate=args.learning_rate,
        seed=args.seed,
        train_ratio=args.train_ratio,
        hidden=args.hidden,
        verbose=not args.quiet,
    )
    export_artifacts(model, metrics, eval_records, args.output_dir)

    print(f"\nArtifacts exported to {args.output_dir}")
    print(f"Eval loss: {metrics['loss']:.4f} | accuracy: {metrics['accuracy']:.3f}")
    print(f"\nConfig: {args.dataset_size} samples, {args.epochs} epochs, lr={args.learning_rate}, seed={args.seed}")


if __name__ == "__main__":
    main()
