#!/usr/bin/env python
import io
import os
import logging
from enum import Enum
from typing import Text, Union, Tuple, Optional, Sequence, List, Iterable
import numpy
import pandas
import pysam

from cn_view.common import SchemaError, InvalidParameterError


class Keys:
    # copy-number calls
    chromosome = "chromosome"
    coordinate = "coordinate"
    cn = "cn"
    p_value = "p_value"
    # cytogenetic bands (UCSC cytoBand schema)
    chrom = "chrom"
    chrom_start = "chromStart"
    chrom_end = "chromEnd"
    name = "name"
    gie_stain = "gieStain"
    genome = "genome"
    # segment calls
    start = "start"
    end = "end"
    segmean = "segmean"

    call_columns = (chromosome, coordinate, cn)
    cytoband_columns = (chrom, chrom_start, chrom_end, name, gie_stain)
    segment_columns = (chromosome, start, end, segmean)
    boundary_columns = (chromosome, coordinate)
    chromosome_columns = (chromosome, chrom)


class Default:
    genome = "hg19"
    chromosome = "chr1"
    all_chromosomes = "all"
    cn_scale = "absolute"
    int_type = numpy.int64
    float_type = numpy.float64
    header_start = '#'
    encoding = "utf-8"
    log_progress = True


class CnScale(Enum):
    """ Whether copy number calls are relative (copy neutral == 0) or absolute (copy neutral == 2) """
    Relative = "relative"
    Absolute = "absolute"

    @classmethod
    def _missing_(cls, value):
        raise InvalidParameterError(
            f"Invalid CNscale: {value!r}. Must be one of {', '.join(repr(scale.value) for scale in cls)}"
        )

    @property
    def neutral_copy_number(self) -> float:
        return 0.0 if self == CnScale.Relative else 2.0

    def __str__(self):
        return self.value


def _require_columns(table: pandas.DataFrame, required_columns: Sequence[str], table_name: str):
    if not isinstance(table, pandas.DataFrame):
        raise SchemaError(f"{table_name} must be a pandas.DataFrame, not {type(table).__name__}")
    missing_columns = [column for column in required_columns if column not in table.columns]
    if missing_columns:
        raise SchemaError(
            f"{table_name} is missing required column(s): {', '.join(missing_columns)}", columns=missing_columns
        )


def _coerce_numeric(table: pandas.DataFrame, column: str, table_name: str) -> pandas.Series:
    try:
        values = pandas.to_numeric(table[column], errors="raise")
    except (ValueError, TypeError) as error:
        raise SchemaError(f"{table_name} column {column} has non-numeric values", columns=[column]) from error
    if values.isnull().any():
        raise SchemaError(f"{table_name} column {column} has missing values", columns=[column])
    return values


def _coerce_int_column(
        table: pandas.DataFrame, column: str, table_name: str, int_type: type = Default.int_type
) -> pandas.Series:
    values = _coerce_numeric(table, column, table_name)
    if not pandas.api.types.is_integer_dtype(values):
        if not numpy.array_equal(values, numpy.round(values)):
            raise SchemaError(f"{table_name} column {column} has non-integer values", columns=[column])
    values = values.astype(int_type)
    if (values < 0).any():
        raise SchemaError(f"{table_name} column {column} has negative values", columns=[column])
    return values


def _coerce_float_column(
        table: pandas.DataFrame, column: str, table_name: str, float_type: type = Default.float_type
) -> pandas.Series:
    return _coerce_numeric(table, column, table_name).astype(float_type)


def _check_intervals(table: pandas.DataFrame, begin: str, end: str, table_name: str):
    bad_intervals = table[end] <= table[begin]
    if bad_intervals.any():
        raise SchemaError(
            f"{table_name} has {bad_intervals.sum()} row(s) with {end} <= {begin}", columns=[begin, end]
        )


def normalize_calls(calls: pandas.DataFrame, table_name: str = "calls") -> pandas.DataFrame:
    """
    Check and coerce a table of raw copy number calls.
    Args:
        calls: pandas.DataFrame
            Table with columns "chromosome", "coordinate", "cn", and optionally "p_value". Other columns are kept.
        table_name: str (Default="calls")
            Name used to describe the table in error messages
    Returns:
        normalized_calls: pandas.DataFrame
            Copy of calls with "chromosome" as str, "coordinate" as int and "cn" (and "p_value") as float.
    """
    _require_columns(calls, Keys.call_columns, table_name)
    calls = calls.copy()
    calls[Keys.chromosome] = calls[Keys.chromosome].astype(str)
    calls[Keys.coordinate] = _coerce_int_column(calls, Keys.coordinate, table_name)
    calls[Keys.cn] = _coerce_float_column(calls, Keys.cn, table_name)
    if Keys.p_value in calls.columns:
        calls[Keys.p_value] = _coerce_float_column(calls, Keys.p_value, table_name)
        if ((calls[Keys.p_value] < 0) | (calls[Keys.p_value] > 1)).any():
            raise SchemaError(f"{table_name} column {Keys.p_value} has values outside [0, 1]",
                              columns=[Keys.p_value])
    return calls


def normalize_cytobands(
        cytobands: Optional[pandas.DataFrame], table_name: str = "cytobands"
) -> Optional[pandas.DataFrame]:
    """ Check and coerce a table of cytogenetic bands in UCSC cytoBand format. None passes through. """
    if cytobands is None:
        return None
    _require_columns(cytobands, Keys.cytoband_columns, table_name)
    cytobands = cytobands.copy()
    for column in (Keys.chrom, Keys.name, Keys.gie_stain):
        cytobands[column] = cytobands[column].astype(str)
    for column in (Keys.chrom_start, Keys.chrom_end):
        cytobands[column] = _coerce_int_column(cytobands, column, table_name)
    _check_intervals(cytobands, Keys.chrom_start, Keys.chrom_end, table_name)
    return cytobands


def normalize_segments(
        segments: Optional[pandas.DataFrame], table_name: str = "segments"
) -> Optional[pandas.DataFrame]:
    """ Check and coerce a table of copy number segment calls. None passes through. """
    if segments is None:
        return None
    _require_columns(segments, Keys.segment_columns, table_name)
    segments = segments.copy()
    segments[Keys.chromosome] = segments[Keys.chromosome].astype(str)
    for column in (Keys.start, Keys.end):
        segments[column] = _coerce_int_column(segments, column, table_name)
    segments[Keys.segmean] = _coerce_float_column(segments, Keys.segmean, table_name)
    _check_intervals(segments, Keys.start, Keys.end, table_name)
    return segments


def normalize_inputs(
        calls: pandas.DataFrame,
        cytobands: Optional[pandas.DataFrame] = None,
        segments: Optional[pandas.DataFrame] = None,
        cn_scale: Union[str, CnScale] = Default.cn_scale
) -> Tuple[pandas.DataFrame, Optional[pandas.DataFrame], Optional[pandas.DataFrame], CnScale]:
    """
    Validate all inputs of one plot. The copy number scale is checked first so a bad value is reported before any
    table is inspected. Inputs are never modified; normalized copies are returned.
    Returns:
        calls, cytobands, segments: normalized tables (cytobands and segments may be None)
        cn_scale: CnScale
    """
    cn_scale = CnScale(cn_scale)
    return normalize_calls(calls), normalize_cytobands(cytobands), normalize_segments(segments), cn_scale


def get_chromosome_column(table: pandas.DataFrame) -> str:
    for column in Keys.chromosome_columns:
        if column in table.columns:
            return column
    raise SchemaError(
        f"table has no chromosome column (one of {', '.join(Keys.chromosome_columns)})",
        columns=list(Keys.chromosome_columns)
    )


def subset_chromosome(table: pandas.DataFrame, chromosome: str) -> pandas.DataFrame:
    """
    Get the rows of a table on one chromosome.
    Args:
        table: pandas.DataFrame
            Table with a "chromosome" or "chrom" column
        chromosome: str
            Wanted chromosome, or "all" to keep every row
    Returns:
        subset: pandas.DataFrame
            The rows on chromosome (possibly none). If chromosome is "all", the table itself.
    """
    column = get_chromosome_column(table)
    if chromosome == Default.all_chromosomes:
        return table
    return table.loc[table[column] == chromosome]


def get_unmatched_chromosomes(table: pandas.DataFrame, cytobands: pandas.DataFrame) -> List[str]:
    """ Chromosomes of table (in canonical order) that have no cytobands, e.g. "1" when the bands use "chr1" """
    band_chromosomes = set(cytobands[get_chromosome_column(cytobands)])
    return sort_chromosomes(
        chromosome for chromosome in table[get_chromosome_column(table)] if chromosome not in band_chromosomes
    )


def contig_sort_key(contig: Text) -> Tuple[int, int, str]:
    """
    Used to put contigs into a sensible sorted order: numbered chromosomes in numeric order, then X, Y, M, then
    everything else lexically.
    Args:
        contig: str
            Name of contig, with or without "chr" prefix
    Returns:
        sort_key: Tuple[int, int, str]
            Key for sorting contig
    """
    base_name = contig[3:] if contig.startswith("chr") else contig
    if base_name.isdigit():
        return 0, int(base_name), contig
    sex_order = {"X": 0, "Y": 1, "M": 2, "MT": 2}.get(base_name, None)
    if sex_order is not None:
        return 1, sex_order, contig
    return 2, 0, contig


def sort_chromosomes(chromosomes: Iterable[str]) -> List[str]:
    """ Unique chromosome names in canonical order """
    return sorted(set(chromosomes), key=contig_sort_key)


def tsv_to_pandas(
        data_file: Text,
        header_start: str = Default.header_start,
        encoding: str = Default.encoding,
        log_progress: bool = Default.log_progress,
        **kwargs
) -> pandas.DataFrame:
    f"""
    Load dataframe from tab-delimited file (plain or bgzipped). The first line is the header, it may start with
    {header_start} which is stripped from the first column name.
    Args:
        data_file: Text
            Full path to file
        header_start: str (Default={Default.header_start})
            Optional comment-like prefix on the header line
        encoding: str (Default={Default.encoding})
            Encoding to use for file
        log_progress: bool (Default={Default.log_progress})
            Log file name on loading
        **kwargs: passed to pandas.read_csv
    Returns:
        df: pandas.DataFrame
            Table of data.
    """
    if not os.path.isfile(data_file):
        raise ValueError(f"{data_file} does not exist")
    if log_progress:
        logging.info(f"Loading {data_file}")
    with pysam.BGZFile(data_file, "rb") as f_in:
        text = f_in.read().decode(encoding)
    if header_start and text.startswith(header_start):
        text = text[len(header_start):]
    return pandas.read_csv(io.StringIO(text), sep='\t', **kwargs)


def pandas_to_tsv(
        data_file: Text,
        df: pandas.DataFrame,
        write_index: bool = False,
        header_start: str = "",
        encoding: str = Default.encoding
):
    f"""
    Save pandas DataFrame into tab-delimited bgzipped file.
    Args:
        data_file: Text
            Full path to save file
        df: pandas.DataFrame
            Table of data.
        write_index: bool (Default = False)
            If true, write the DataFrame index as the first output column, if False, omit the index
        header_start: str (Default="")
            Start header with this string.
        encoding: str (Default = {Default.encoding})
            Encoding to use when writing strings.
    """
    with pysam.BGZFile(data_file, "wb") as f_out:
        if header_start:
            f_out.write(header_start.encode(encoding))
        f_out.write(df.to_csv(sep='\t', index=write_index, header=True, na_rep="NA").encode(encoding))
