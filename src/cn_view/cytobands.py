#!/usr/bin/env python
import os
import logging
import warnings
import functools
from typing import Optional, Sequence, Callable, FrozenSet
import pandas

from cn_view import genomics_io
from cn_view.common import CytobandLookupError, EmptyInputError, ChromosomeNotFoundError

CytobandFetcher = Callable[[str], pandas.DataFrame]


class Keys:
    genome = genomics_io.Keys.genome
    chrom = genomics_io.Keys.chrom
    chrom_start = genomics_io.Keys.chrom_start
    chrom_end = genomics_io.Keys.chrom_end
    chromosome = genomics_io.Keys.chromosome
    coordinate = genomics_io.Keys.coordinate
    cytoband_columns = genomics_io.Keys.cytoband_columns


class Default:
    genome = genomics_io.Default.genome
    all_chromosomes = genomics_io.Default.all_chromosomes
    preloaded_genomes = frozenset({"hg38", "hg19", "mm10", "mm9", "rn5"})
    preloaded_cytobands_file = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data", "cytobands.tsv")
    ucsc_cytoband_url = "https://hgdownload.soe.ucsc.edu/goldenPath/{genome}/database/cytoBand.txt.gz"


@functools.lru_cache(maxsize=None)
def _load_preloaded_cytobands(cytobands_file: str) -> pandas.DataFrame:
    cytobands = pandas.read_csv(cytobands_file, sep='\t', dtype={Keys.genome: str, Keys.chrom: str})
    return genomics_io.normalize_cytobands(cytobands, table_name=cytobands_file)


def get_preloaded_cytobands(
        genome: str,
        cytobands_file: str = Default.preloaded_cytobands_file
) -> pandas.DataFrame:
    f"""
    Get cytobands for one genome from the built-in cache. The cache is loaded once per process and never modified;
    each call returns a new table.
    Args:
        genome: str
            Genome assembly, one of {sorted(Default.preloaded_genomes)}
        cytobands_file: str (Default={Default.preloaded_cytobands_file})
            Tab-delimited cache with the UCSC cytoBand columns plus a "genome" column
    Returns:
        cytobands: pandas.DataFrame
            Cytobands for genome, without the "genome" column
    """
    cache = _load_preloaded_cytobands(cytobands_file)
    return cache.loc[cache[Keys.genome] == genome].drop(columns=Keys.genome).reset_index(drop=True)


def fetch_ucsc_cytobands(genome: str, url_template: str = Default.ucsc_cytoband_url) -> pandas.DataFrame:
    f"""
    Download the cytoBand table of a genome from the UCSC genome browser. Single attempt, no timeout.
    Args:
        genome: str
            UCSC genome identifier (e.g. "hg18", "canFam3")
        url_template: str (Default={Default.ucsc_cytoband_url})
            Location of the gzipped cytoBand table, formatted with genome
    Returns:
        cytobands: pandas.DataFrame
            Table with columns {', '.join(Keys.cytoband_columns)}
    """
    url = url_template.format(genome=genome)
    try:
        cytobands = pandas.read_csv(
            url, sep='\t', header=None, names=list(Keys.cytoband_columns), usecols=range(len(Keys.cytoband_columns)),
            dtype={Keys.chrom: str}, compression="gzip"
        )
    except (OSError, pandas.errors.ParserError, pandas.errors.EmptyDataError) as error:
        raise CytobandLookupError(f"Unable to retrieve cytobands for genome {genome} from {url}: {error}") from error
    if cytobands.empty:
        raise CytobandLookupError(f"No cytobands found for genome {genome} at {url}")
    return genomics_io.normalize_cytobands(cytobands, table_name=url)


class UserCytobandResolver:
    """ Use cytobands supplied by the caller, whatever the genome """
    name = "user"

    def __call__(self, genome: str, cytobands: Optional[pandas.DataFrame]) -> Optional[pandas.DataFrame]:
        if cytobands is None:
            return None
        logging.info("Detected user-supplied cytobands, using them for position and cytogenetic information")
        return cytobands


class PreloadedCytobandResolver:
    """ Use the built-in cache for genomes that are in it """
    __slots__ = ("genomes", "cytobands_file")
    name = "preloaded"

    def __init__(
            self,
            genomes: FrozenSet[str] = Default.preloaded_genomes,
            cytobands_file: str = Default.preloaded_cytobands_file
    ):
        self.genomes = genomes
        self.cytobands_file = cytobands_file

    def __call__(self, genome: str, cytobands: Optional[pandas.DataFrame]) -> Optional[pandas.DataFrame]:
        if genome not in self.genomes:
            return None
        logging.info(f"Genome {genome} is preloaded, retrieving cached cytoband data")
        return get_preloaded_cytobands(genome, cytobands_file=self.cytobands_file)


class RemoteCytobandResolver:
    """ Query a remote service for the genome's cytobands. Warnings from the client are suppressed, errors are not """
    __slots__ = ("fetch",)
    name = "remote"

    def __init__(self, fetch: CytobandFetcher = fetch_ucsc_cytobands):
        self.fetch = fetch

    def __call__(self, genome: str, cytobands: Optional[pandas.DataFrame]) -> Optional[pandas.DataFrame]:
        logging.info(f"Attempting to query UCSC for chromosome positions and cytogenetic information of {genome}")
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            return self.fetch(genome)


CytobandResolver = Callable[[str, Optional[pandas.DataFrame]], Optional[pandas.DataFrame]]


def default_resolvers(fetch: CytobandFetcher = fetch_ucsc_cytobands) -> Sequence[CytobandResolver]:
    """ Resolvers in order of precedence: user table, then built-in cache, then remote lookup """
    return UserCytobandResolver(), PreloadedCytobandResolver(), RemoteCytobandResolver(fetch=fetch)


def resolve_cytobands(
        genome: str = Default.genome,
        cytobands: Optional[pandas.DataFrame] = None,
        resolvers: Optional[Sequence[CytobandResolver]] = None
) -> pandas.DataFrame:
    """
    Get cytoband information from the first resolver that can supply it.
    Args:
        genome: str
            Genome assembly identifier
        cytobands: pandas.DataFrame or None
            Normalized user-supplied cytobands. Takes precedence over genome.
        resolvers: Sequence[CytobandResolver] or None (Default=None)
            Callables (genome, cytobands) -> table or None, tried in order. If None, use default_resolvers()
    Returns:
        cytobands: pandas.DataFrame
            Resolved cytobands
    """
    if resolvers is None:
        resolvers = default_resolvers()
    for resolver in resolvers:
        resolved = resolver(genome, cytobands)
        if resolved is not None:
            return resolved
    raise CytobandLookupError(f"No cytoband source available for genome {genome}")


def get_boundary_points(
        cytobands: pandas.DataFrame,
        chromosome: str = Default.all_chromosomes
) -> pandas.DataFrame:
    """
    Make dummy points at the extremes of each chromosome, so that plot axes span the whole chromosome even where
    there are no calls.
    Args:
        cytobands: pandas.DataFrame
            Normalized cytobands
        chromosome: str (Default="all")
            Keep only points on this chromosome, or all points if "all"
    Returns:
        boundary_points: pandas.DataFrame
            Table with columns "chromosome" and "coordinate": the minimum chromStart of every chromosome followed by
            the maximum chromEnd of every chromosome.
    """
    if cytobands.empty:
        raise EmptyInputError("cytoband data has no rows, unable to determine chromosome boundaries")
    if chromosome != Default.all_chromosomes and not (cytobands[Keys.chrom] == chromosome).any():
        raise ChromosomeNotFoundError(
            chromosome, available=genomics_io.sort_chromosomes(cytobands[Keys.chrom].unique())
        )
    by_chrom = cytobands.groupby(Keys.chrom, sort=False)
    fake_start = by_chrom[Keys.chrom_start].min()
    fake_end = by_chrom[Keys.chrom_end].max()
    boundary_points = pandas.concat((fake_start, fake_end)).rename(Keys.coordinate).rename_axis(Keys.chromosome)\
        .reset_index()
    return genomics_io.subset_chromosome(boundary_points, chromosome).reset_index(drop=True)
