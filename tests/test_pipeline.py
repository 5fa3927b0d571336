"""
Tests for datasets, the training loop and artifact export.
"""

import json

import pytest

from scalargrad.nn import MLP
from scalargrad.pipeline import (
    FEATURES,
    TOY_INPUTS,
    TOY_TARGETS,
    evaluate,
    export_artifacts,
    generate_dataset,
    main,
    model_from_payload,
    model_payload,
    rule_score,
    split_dataset,
    toy_records,
    train_model,
    train_step,
)


# ============================================================================
# DATA
# ============================================================================

def test_generate_dataset_is_seeded():
    first = generate_dataset(50, seed=3)
    assert first == generate_dataset(50, seed=3)
    assert first != generate_dataset(50, seed=4)
    for record in first:
        assert record["target"] in (1.0, -1.0)
        assert all(-1.0 <= record[f] <= 1.0 for f in FEATURES)


def test_noise_free_labels_follow_linear_rule():
    records = generate_dataset(100, seed=1, noise=0)
    for record in records:
        expected = 1.0 if rule_score(record) >= 0 else -1.0
        assert record["target"] == expected
    assert {r["target"] for r in records} == {1.0, -1.0}


def test_split_dataset():
    records = generate_dataset(20)
    train, held_out = split_dataset(records, train_ratio=0.75)
    assert len(train) == 15
    assert len(held_out) == 5
    assert sorted(map(id, train + held_out)) == sorted(map(id, records))


def test_split_dataset_rejects_bad_ratio():
    with pytest.raises(ValueError):
        split_dataset([], train_ratio=0.0)


# ============================================================================
# TRAINING
# ============================================================================

def test_toy_problem_loss_decreases():
    model = MLP(3, [4, 4, 1], seed=1)
    losses = [train_step(model, TOY_INPUTS, TOY_TARGETS, 0.02) for _ in range(40)]
    assert losses[-1] < losses[0]


def test_train_model_history():
    model = MLP(3, [3, 1], seed=0)
    history = train_model(model, toy_records(), epochs=25, learning_rate=0.02, verbose=False)
    assert len(history) == 25
    assert history[-1] < history[0]


def test_evaluate():
    model = MLP(3, [3, 1], seed=0)
    metrics = evaluate(model, toy_records())
    assert metrics["sample_count"] == 4
    assert 0.0 <= metrics["accuracy"] <= 1.0
    assert metrics["loss"] >= 0.0


# ============================================================================
# EXPORT
# ============================================================================

def test_model_payload_round_trip():
    model = MLP(3, [2, 1], seed=9)
    restored = model_from_payload(json.loads(json.dumps(model_payload(model))))
    x = [0.2, -0.4, 0.9]
    assert restored(x).data == model(x).data


def test_export_artifacts(tmp_path):
    model = MLP(3, [2, 1], seed=9)
    records = toy_records()
    paths = export_artifacts(model, evaluate(model, records), records, tmp_path)

    assert json.loads(paths["model"].read_text())["architecture"] == {"nin": 3, "nouts": [2, 1]}
    assert json.loads(paths["metrics"].read_text())["sample_count"] == 4
    graph = json.loads(paths["graph"].read_text())
    assert graph["nodes"][0]["grad"] == 1.0
    assert graph["edges"]


def test_main(tmp_path, capsys):
    main([
        "--dataset-size", "30",
        "--epochs", "3",
        "--hidden", "3",
        "--output-dir", str(tmp_path),
        "--quiet",
    ])
    assert (tmp_path / "model.json").exists()
    assert (tmp_path / "model_metrics.json").exists()
    assert (tmp_path / "graph.json").exists()
    assert "accuracy" in capsys.readouterr().out
