import os
import warnings
import numpy
import pandas
import pytest
from typing import List

from cn_view import cytobands, genomics_io
from cn_view.common import CytobandLookupError, EmptyInputError, ChromosomeNotFoundError
import common_test_utils


class Keys:
    chrom = cytobands.Keys.chrom
    chrom_start = cytobands.Keys.chrom_start
    chrom_end = cytobands.Keys.chrom_end
    genome = cytobands.Keys.genome
    chromosome = cytobands.Keys.chromosome
    coordinate = cytobands.Keys.coordinate


class Default:
    preloaded_genomes = tuple(sorted(cytobands.Default.preloaded_genomes))
    remote_genome = "hg18"
    hg19_chr1_length = 249250621
    hg38_chr1_length = 248956422
    num_human_chromosomes = 24
    network_tests_env = "CN_VIEW_NETWORK_TESTS"


class RecordingFetch:
    """ Stand-in for the remote lookup that remembers which genomes were requested """
    def __init__(self, result: pandas.DataFrame):
        self.result = result
        self.requested: List[str] = []

    def __call__(self, genome: str) -> pandas.DataFrame:
        self.requested.append(genome)
        return self.result


@pytest.fixture(scope="function")
def small_cytobands() -> pandas.DataFrame:
    return genomics_io.normalize_cytobands(pandas.DataFrame({
        Keys.chrom: ["chr1", "chr1", "chr1", "chr2", "chr2"],
        Keys.chrom_start: [0, 1000, 2000, 0, 1500],
        Keys.chrom_end: [1000, 2000, 5000, 1500, 3000],
        "name": ["p11", "p10", "q11", "p11", "q11"],
        "gieStain": ["gneg", "acen", "gpos50", "acen", "gneg"]
    }))


def test_preloaded_cytobands(preloaded_genomes=Default.preloaded_genomes):
    for genome in preloaded_genomes:
        genome_cytobands = cytobands.get_preloaded_cytobands(genome)
        assert not genome_cytobands.empty, f"{genome} has no cached cytobands"
        assert Keys.genome not in genome_cytobands.columns
        assert list(genome_cytobands.columns) == list(genomics_io.Keys.cytoband_columns)
        assert (genome_cytobands[Keys.chrom_end] > genome_cytobands[Keys.chrom_start]).all()
        assert numpy.array_equal(genome_cytobands.index, numpy.arange(len(genome_cytobands)))


def test_preloaded_human_extents():
    for genome, chr1_length in (("hg19", Default.hg19_chr1_length), ("hg38", Default.hg38_chr1_length)):
        genome_cytobands = cytobands.get_preloaded_cytobands(genome)
        assert genome_cytobands[Keys.chrom].nunique() == Default.num_human_chromosomes
        chr1 = genome_cytobands.loc[genome_cytobands[Keys.chrom] == "chr1"]
        assert chr1[Keys.chrom_start].min() == 0
        assert chr1[Keys.chrom_end].max() == chr1_length
        assert (chr1["gieStain"] == "acen").any()


def test_preloaded_cytobands_are_fresh_copies():
    first = cytobands.get_preloaded_cytobands("hg19")
    first.loc[:, Keys.chrom_end] = 0
    second = cytobands.get_preloaded_cytobands("hg19")
    assert (second[Keys.chrom_end] > 0).all()


def test_resolve_preloaded_genome_makes_no_remote_call(preloaded_genomes=Default.preloaded_genomes):
    fetch = RecordingFetch(result=None)
    for genome in preloaded_genomes:
        resolved = cytobands.resolve_cytobands(genome, resolvers=cytobands.default_resolvers(fetch=fetch))
        common_test_utils.assert_dataframes_equal(resolved, cytobands.get_preloaded_cytobands(genome), genome)
    assert fetch.requested == []


def test_resolve_other_genome_makes_one_remote_call(small_cytobands: pandas.DataFrame):
    fetch = RecordingFetch(result=small_cytobands)
    resolved = cytobands.resolve_cytobands(Default.remote_genome, resolvers=cytobands.default_resolvers(fetch=fetch))
    assert resolved is small_cytobands
    assert fetch.requested == [Default.remote_genome]


def test_user_cytobands_take_precedence(small_cytobands: pandas.DataFrame):
    fetch = RecordingFetch(result=None)
    for genome in ("hg19", Default.remote_genome):
        resolved = cytobands.resolve_cytobands(
            genome, cytobands=small_cytobands, resolvers=cytobands.default_resolvers(fetch=fetch)
        )
        assert resolved is small_cytobands
    assert fetch.requested == []


def test_resolve_errors():
    with pytest.raises(CytobandLookupError):
        cytobands.resolve_cytobands("hg19", resolvers=[])

    def failing_fetch(genome: str) -> pandas.DataFrame:
        raise CytobandLookupError(f"no such genome {genome}")

    with pytest.raises(CytobandLookupError):
        cytobands.resolve_cytobands("notAGenome", resolvers=cytobands.default_resolvers(fetch=failing_fetch))


def test_remote_resolver_suppresses_warnings(small_cytobands: pandas.DataFrame):
    def noisy_fetch(genome: str) -> pandas.DataFrame:
        warnings.warn(f"{genome} is deprecated", UserWarning)
        return small_cytobands

    resolver = cytobands.RemoteCytobandResolver(fetch=noisy_fetch)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        resolved = resolver(Default.remote_genome, None)
    assert resolved is small_cytobands
    assert caught == []


def test_fetch_ucsc_cytobands(monkeypatch, small_cytobands: pandas.DataFrame):
    requested_urls = []

    def fake_read_csv(url, **kwargs):
        requested_urls.append(url)
        return small_cytobands.astype({Keys.chrom_start: float})

    monkeypatch.setattr(pandas, "read_csv", fake_read_csv)
    fetched = cytobands.fetch_ucsc_cytobands("canFam3")
    assert requested_urls == [cytobands.Default.ucsc_cytoband_url.format(genome="canFam3")]
    common_test_utils.assert_dataframes_equal(fetched, small_cytobands, "fetched", check_dtype=False)
    assert fetched[Keys.chrom_start].dtype == numpy.int64


def test_fetch_ucsc_cytobands_errors(monkeypatch, small_cytobands: pandas.DataFrame):
    def unreachable(url, **kwargs):
        raise OSError(f"unable to reach {url}")

    monkeypatch.setattr(pandas, "read_csv", unreachable)
    with pytest.raises(CytobandLookupError) as exception_info:
        cytobands.fetch_ucsc_cytobands("canFam3")
    assert isinstance(exception_info.value.__cause__, OSError)

    monkeypatch.setattr(pandas, "read_csv", lambda url, **kwargs: small_cytobands.iloc[0:0])
    with pytest.raises(CytobandLookupError):
        cytobands.fetch_ucsc_cytobands("canFam3")


@pytest.mark.skipif(not os.environ.get(Default.network_tests_env), reason="requires network access")
def test_fetch_ucsc_cytobands_network():
    fetched = cytobands.fetch_ucsc_cytobands("hg19")
    chr1 = fetched.loc[fetched[Keys.chrom] == "chr1"]
    assert chr1[Keys.chrom_end].max() == Default.hg19_chr1_length


def test_get_boundary_points(small_cytobands: pandas.DataFrame):
    boundary_points = cytobands.get_boundary_points(small_cytobands)
    expected = pandas.DataFrame({
        Keys.chromosome: ["chr1", "chr2", "chr1", "chr2"],
        Keys.coordinate: numpy.array([0, 0, 5000, 3000], dtype=numpy.int64)
    })
    common_test_utils.assert_dataframes_equal(boundary_points, expected, "all chromosomes", check_dtype=False)
    assert boundary_points[Keys.coordinate].dtype == numpy.int64

    chr2_points = cytobands.get_boundary_points(small_cytobands, chromosome="chr2")
    assert chr2_points[Keys.chromosome].tolist() == ["chr2", "chr2"]
    assert chr2_points[Keys.coordinate].tolist() == [0, 3000]
    assert numpy.array_equal(chr2_points.index, [0, 1])


def test_get_boundary_points_preloaded():
    boundary_points = cytobands.get_boundary_points(cytobands.get_preloaded_cytobands("hg19"), chromosome="chr1")
    assert boundary_points[Keys.coordinate].tolist() == [0, Default.hg19_chr1_length]


def test_get_boundary_points_errors(small_cytobands: pandas.DataFrame):
    with pytest.raises(EmptyInputError):
        cytobands.get_boundary_points(small_cytobands.iloc[0:0])

    with pytest.raises(ChromosomeNotFoundError) as exception_info:
        cytobands.get_boundary_points(small_cytobands, chromosome="chr99")
    assert exception_info.value.chromosome == "chr99"
    assert "chr1,chr2" in str(exception_info.value)
    # a missing chromosome is a kind of empty input
    assert isinstance(exception_info.value, EmptyInputError)
