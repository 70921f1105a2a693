# conftest.py
import matplotlib
import matplotlib.pyplot as plt
import pytest

@pytest.fixture(autouse=True)
def mpl_test_backend():
    """Render off-screen and drop every figure a test leaves behind."""
    matplotlib.use('Agg')
    yield
    plt.close('all')
