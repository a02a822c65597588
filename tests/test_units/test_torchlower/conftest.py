"""Shared pytest fixtures for torchlower unit tests.

This module provides:
- LSTM cell case factories
- Conversion context fixtures
- Numerical validation utilities
"""

import numpy as np
import pytest
import torch

from tests.test_units.test_torchlower.fixtures.lstm_cases import make_lstm_case
from torchlower.convert import ConversionContext


@pytest.fixture
def lstm_case():
    """Create LSTM cell cases.

    Returns the make_lstm_case factory.
    """
    return make_lstm_case


@pytest.fixture
def ctx(builder):
    """Create a conversion context over the shared empty builder."""
    return ConversionContext(builder)


@pytest.fixture
def random_input_generator():
    """Generate random test inputs.

    Returns a function that creates random float32 tensors.
    """

    def _generate(shape, seed=42):
        generator = torch.Generator().manual_seed(seed)
        return torch.randn(shape, generator=generator)

    return _generate


@pytest.fixture
def numerical_validator():
    """Validate numerical equivalence between ONNX Runtime and torch outputs."""

    def _compare(onnx_output, torch_output, rtol=1e-4, atol=1e-5, name=""):
        if isinstance(torch_output, torch.Tensor):
            torch_output = torch_output.detach().numpy()
        np.testing.assert_allclose(
            onnx_output,
            torch_output,
            rtol=rtol,
            atol=atol,
            err_msg=f"Output mismatch for {name}",
        )
        return True

    return _compare
