import os
import matplotlib
matplotlib.use("Agg")
import pandas
import pytest
from matplotlib import pyplot

from cn_view import command_line, genomics_io, plotting


@pytest.fixture(autouse=True)
def close_figures():
    yield
    pyplot.close("all")


def test_find_commands():
    assert command_line.find_commands() == ("cn_view",)


def test_help(capsys):
    command_line.main(["cn-view", "--help"])
    captured = capsys.readouterr()
    assert "cn-view [command] [args...]" in captured.out
    assert "  cn-view:" in captured.out
    assert "Plot copy number calls" in captured.out


def test_bad_commands(capsys):
    with pytest.raises(SystemExit):
        command_line.main(["cn-view"])
    assert "No command specified" in capsys.readouterr().err
    with pytest.raises(SystemExit):
        command_line.main(["cn-view", "genomics-io"])
    assert "Bad command: genomics-io" in capsys.readouterr().err


def test_dispatch(tmpdir):
    calls_file = os.path.join(tmpdir, "calls.tsv.gz")
    genomics_io.pandas_to_tsv(calls_file, pandas.DataFrame({
        "chromosome": ["chr1", "chr2"], "coordinate": [1000, 2000], "cn": [2.0, 3.0]
    }), header_start="#")
    pdf_file = os.path.join(tmpdir, "genome.pdf")
    graphic = command_line.main(["cn-view", "cn-view", "--calls", calls_file, "--chr", "all", "--genome", "mm10",
                                 "--output-pdf", pdf_file])
    assert isinstance(graphic, plotting.Graphic)
    assert os.path.getsize(pdf_file) > 0
