"""Tests for broadcast reconciliation and bias addition.

Test Coverage:
- TestBroadcastPredicate: strict and multidirectional compatibility
- TestReconcile: no-op, rank padding, idempotence, failures
- TestAddBias: layers appended per bias shape
"""

import pytest
import torch

from torchlower.build import ElementwiseOp, PrimitiveKind
from torchlower.convert import add_bias, is_broadcastable, reconcile
from torchlower.errors import ShapeError


class TestBroadcastPredicate:
    """Test is_broadcastable."""

    @pytest.mark.parametrize(
        ("primary", "secondary"),
        [
            ((2, 12), (2, 12)),
            ((2, 12), (12,)),
            ((2, 12), (1, 12)),
            ((2, 12), (2, 1)),
            ((2, 12), ()),
            (("batch", 12), (12,)),
            (("batch", 12), ("batch", 12)),
            (("batch", 12), (1, 12)),
        ],
    )
    def test_compatible(self, primary, secondary):
        assert is_broadcastable(primary, secondary)

    @pytest.mark.parametrize(
        ("primary", "secondary"),
        [
            ((2, 12), (3, 12)),
            ((2, 12), (5,)),
            ((2, 12), (1, 2, 12)),
            ((1, 12), (2, 12)),
            (("batch", 12), ("seq", 12)),
            ((2, 12), ("batch", 12)),
        ],
    )
    def test_incompatible(self, primary, secondary):
        assert not is_broadcastable(primary, secondary)

    def test_primary_is_never_expanded(self):
        assert not is_broadcastable((2, 1), (2, 12))
        assert is_broadcastable((2, 1), (2, 12), multidirectional=True)

    def test_multidirectional_allows_higher_rank_secondary(self):
        assert not is_broadcastable((2, 12), (1, 2, 12))
        assert is_broadcastable((2, 12), (1, 2, 12), multidirectional=True)
        assert not is_broadcastable((2, 12), (3, 12), multidirectional=True)


class TestReconcile:
    """Test reconcile."""

    def test_identical_shapes_are_noop(self, builder):
        a = builder.add_input("a", (2, 12))
        b = builder.freeze(torch.randn(2, 12))
        assert reconcile(builder, a, b) is b
        assert builder.layers == []

    def test_lower_rank_padded_with_one_reshape(self, builder):
        a = builder.add_input("a", (2, 12))
        b = builder.freeze(torch.randn(12))
        out = reconcile(builder, a, b)
        assert out.shape == (1, 12)
        assert builder.count(PrimitiveKind.RESHAPE) == 1
        assert builder.layers_of(PrimitiveKind.RESHAPE)[0].attrs["new_shape"] == (1, 12)

    def test_reconcile_is_idempotent(self, builder):
        a = builder.add_input("a", (2, 12))
        b = builder.freeze(torch.randn(12))
        once = reconcile(builder, a, b)
        twice = reconcile(builder, a, once)
        assert twice is once
        assert builder.count(PrimitiveKind.RESHAPE) == 1

    def test_same_rank_broadcast_needs_no_reshape(self, builder):
        a = builder.add_input("a", (2, 12))
        b = builder.freeze(torch.randn(1, 12))
        assert reconcile(builder, a, b) is b
        assert builder.layers == []

    def test_incompatible_raises_shape_error(self, builder):
        a = builder.add_input("a", (2, 12))
        b = builder.freeze(torch.randn(5))
        with pytest.raises(ShapeError) as exc_info:
            reconcile(builder, a, b, name="bias")
        assert exc_info.value.operand == "bias"
        assert exc_info.value.expected == (2, 12)
        assert exc_info.value.actual == (5,)
        assert builder.layers == []


class TestAddBias:
    """Test add_bias."""

    def test_matching_bias_emits_only_sum(self, ctx, lstm_node):
        a = ctx.builder.add_input("a", (2, 12))
        b = ctx.builder.freeze(torch.randn(2, 12))
        out = add_bias(ctx, a, b, "b_ih", lstm_node)
        assert out.shape == (2, 12)
        assert ctx.builder.count(PrimitiveKind.RESHAPE) == 0
        assert ctx.builder.count(PrimitiveKind.ELEMENTWISE) == 1
        assert ctx.builder.layers[-1].attrs["op"] is ElementwiseOp.SUM

    def test_vector_bias_emits_reshape_then_sum(self, ctx, lstm_node):
        a = ctx.builder.add_input("a", (2, 12))
        b = ctx.builder.freeze(torch.randn(12))
        out = add_bias(ctx, a, b, "b_ih", lstm_node)
        kinds = [layer.kind for layer in ctx.builder.layers]
        assert kinds == [PrimitiveKind.RESHAPE, PrimitiveKind.ELEMENTWISE]
        reshape, add = ctx.builder.layers
        assert add.inputs == (a.name, reshape.output)
        assert out.shape == (2, 12)

    def test_incompatible_bias_appends_nothing(self, ctx, lstm_node):
        a = ctx.builder.add_input("a", (2, 12))
        b = ctx.builder.freeze(torch.randn(2, 5))
        with pytest.raises(ShapeError, match="b_hh") as exc_info:
            add_bias(ctx, a, b, "b_hh", lstm_node)
        assert exc_info.value.node == str(lstm_node)
        assert ctx.builder.layers == []

    def test_symbolic_batch_bias(self, ctx, lstm_node):
        a = ctx.builder.add_input("a", ("batch", 12))
        b = ctx.builder.freeze(torch.randn(12))
        assert add_bias(ctx, a, b, "b_ih", lstm_node).shape == ("batch", 12)
