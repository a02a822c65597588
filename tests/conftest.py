"""Pytest configuration and shared fixtures for torchlower tests."""

import onnxruntime as ort
import pytest

from torchlower.build import PrimitiveGraphBuilder
from torchlower.convert import OperatorNode


@pytest.fixture
def builder():
    """Create an empty primitive graph builder."""
    return PrimitiveGraphBuilder()


@pytest.fixture
def lstm_node():
    """Create an aten::lstm_cell node with all six inputs."""
    return OperatorNode(
        name="lstm_cell_0",
        kind="aten::lstm_cell",
        inputs=("input", "hx", "w_ih", "w_hh", "b_ih", "b_hh"),
        outputs=("hy", "cy"),
    )


@pytest.fixture
def onnx_runner():
    """Run ONNX models in memory with ONNX Runtime.

    Returns a function that runs a ModelProto on a feed dict.
    """

    def _run(model, inputs):
        """Run ONNX model with given inputs.

        :param model: ONNX ModelProto
        :param inputs: Dictionary of input names to numpy arrays
        :return: List of output arrays
        """
        session = ort.InferenceSession(
            model.SerializeToString(), providers=["CPUExecutionProvider"]
        )
        return session.run(None, inputs)

    return _run
