"""
Tests for the network layer: parameter containers, loss and updates.
"""

import random

import pytest

from scalargrad.graph import differentiate
from scalargrad.nn import MLP, Layer, Module, Neuron, mse_loss
from scalargrad.value import Value


# ============================================================================
# CONTAINERS
# ============================================================================

class TestContainers:
    def test_neuron_parameters(self):
        n = Neuron(3, rng=random.Random(0))
        params = n.parameters()
        assert len(params) == 4
        assert all(p.is_leaf() for p in params)
        assert all(-1.0 <= p.data <= 1.0 for p in params)

    def test_neuron_forward(self):
        n = Neuron(2, nonlin="linear", rng=random.Random(0))
        n.load_parameters([0.5, -1.0, 0.25])
        assert n([2.0, 1.0]).data == pytest.approx(0.25)

    def test_relu_neuron_is_non_negative(self):
        rng = random.Random(3)
        for _ in range(20):
            n = Neuron(3, nonlin="relu", rng=rng)
            assert n([rng.uniform(-1, 1) for _ in range(3)]).data >= 0.0

    def test_unknown_nonlinearity(self):
        with pytest.raises(ValueError):
            Neuron(2, nonlin="sigmoid")

    def test_input_width_checked(self):
        with pytest.raises(ValueError):
            Neuron(3)([1.0, 2.0])

    def test_layer_outputs(self):
        layer = Layer(3, 2, rng=random.Random(0))
        out = layer([1.0, 2.0, 3.0])
        assert isinstance(out, list) and len(out) == 2
        assert isinstance(Layer(3, 1, rng=random.Random(0))([1.0, 2.0, 3.0]), Value)

    def test_mlp_shape(self):
        model = MLP(3, [4, 4, 1], seed=1)
        assert len(model.parameters()) == 4 * 4 + 4 * 5 + 1 * 5
        assert isinstance(model([2.0, 3.0, -1.0]), Value)
        assert len(MLP(3, [2, 2], seed=1)([1.0, 1.0, 1.0])) == 2

    def test_mlp_single_hidden_unit(self):
        model = MLP(2, [1, 3], seed=1)
        assert len(model([0.5, -0.5])) == 3

    def test_seeded_mlp_is_reproducible(self):
        first = [p.data for p in MLP(3, [4, 1], seed=5).parameters()]
        second = [p.data for p in MLP(3, [4, 1], seed=5).parameters()]
        assert first == second

    def test_parameter_labels(self):
        labels = [p.label for p in MLP(2, [1], seed=0).parameters()]
        assert labels == ["L0.n0.w0", "L0.n0.w1", "L0.n0.b"]


# ============================================================================
# LOSS AND UPDATES
# ============================================================================

class TestTraining:
    def test_mse_loss(self):
        loss = mse_loss([Value(0.5), Value(-1.0)], [1.0, 1.0])
        assert loss.data == pytest.approx(0.25 + 4.0)

    def test_mse_loss_length_mismatch(self):
        with pytest.raises(ValueError):
            mse_loss([Value(1.0)], [1.0, 2.0])

    def test_update_takes_gradient_step(self):
        model = MLP(3, [2, 1], seed=2)
        before = model.parameters()
        loss = mse_loss([model([1.0, -2.0, 0.5])], [1.0])
        grads = differentiate(loss)

        model.update(grads, 0.1)
        after = model.parameters()
        assert len(after) == len(before)
        for old, new in zip(before, after):
            assert new is not old
            assert new.id != old.id
            assert new.label == old.label
            assert new.data == pytest.approx(old.data - 0.1 * grads.get(old.id, 0.0))
            assert old.grad is None

    def test_update_without_gradients_keeps_values(self):
        model = MLP(2, [2], seed=2)
        before = [p.data for p in model.parameters()]
        model.update({}, 0.5)
        assert [p.data for p in model.parameters()] == before

    def test_load_parameters(self):
        model = MLP(2, [2, 1], seed=0)
        values = [float(i) / 10 for i in range(len(model.parameters()))]
        model.load_parameters(values)
        assert [p.data for p in model.parameters()] == values

    def test_load_parameters_length_mismatch(self):
        model = MLP(2, [2, 1], seed=0)
        with pytest.raises(ValueError):
            model.load_parameters([0.0, 1.0])

    def test_bare_module_cannot_be_updated(self):
        with pytest.raises(NotImplementedError):
            Module().update({}, 0.1)
        with pytest.raises(NotImplementedError):
            Module().load_parameters([])
