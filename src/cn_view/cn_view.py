#!/usr/bin/env python

import os
import sys
import enum
import logging
import argparse
from typing import List, Text, Optional, Dict, Union, Sequence, Any

import pandas

from cn_view import common, genomics_io, cytobands as cytobands_module, plotting
from cn_view.common import InvalidParameterError
from cn_view.genomics_io import CnScale

Renderer = Any  # duck-typed: build_main, build_ideogram, align, draw
DataBundle = Dict[str, Optional[pandas.DataFrame]]


class Keys:
    main = "main"
    dummy_data = "dummyData"
    segments = "segments"
    cytobands = "cytobands"


class OutputMode(enum.Enum):
    """ What cn_view returns: the data to be plotted, the graphic object, or the graphic after drawing it """
    Data = "data"
    Graphic = "graphic"
    Rendered = "rendered"

    @classmethod
    def _missing_(cls, value):
        if value == "grob":
            return cls.Graphic
        elif value == "plot":
            return cls.Rendered
        raise InvalidParameterError(
            f"Invalid output mode: {value!r}. Must be one of {', '.join(repr(mode.value) for mode in cls)}"
        )

    def __str__(self):
        return self.value


class Default:
    genome = genomics_io.Default.genome
    chromosome = genomics_io.Default.chromosome
    all_chromosomes = genomics_io.Default.all_chromosomes
    cn_scale = genomics_io.Default.cn_scale
    ideogram_txt_angle = plotting.Default.ideogram_txt_angle
    ideogram_txt_size = plotting.Default.ideogram_txt_size
    out = OutputMode.Rendered.value
    data_file_suffix = ".tsv.gz"


class GenomeView:
    """ All chromosomes at once, one facet per chromosome, no ideogram """
    __slots__ = ("main",)

    def __init__(self, main: plotting.Graphic):
        self.main = main

    @property
    def graphic(self) -> plotting.Graphic:
        return self.main


class ChromosomeView:
    """ A single chromosome: ideogram aligned above the copy number plot """
    __slots__ = ("ideogram", "main", "composite")

    def __init__(self, ideogram: plotting.Graphic, main: plotting.Graphic, composite: plotting.Graphic):
        self.ideogram = ideogram
        self.main = main
        self.composite = composite

    @property
    def graphic(self) -> plotting.Graphic:
        return self.composite


View = Union[GenomeView, ChromosomeView]


def build_view(
        calls: pandas.DataFrame,
        cytobands: pandas.DataFrame,
        boundary_points: pandas.DataFrame,
        segments: Optional[pandas.DataFrame] = None,
        chromosome: str = Default.chromosome,
        cn_scale: CnScale = CnScale.Absolute,
        ideogram_txt_angle: float = Default.ideogram_txt_angle,
        ideogram_txt_size: float = Default.ideogram_txt_size,
        plot_layer: plotting.Layers = None,
        ideogram_layer: plotting.Layers = None,
        segment_color: Optional[str] = None,
        renderer: Optional[Renderer] = None
) -> (View, pandas.DataFrame, Optional[pandas.DataFrame]):
    """
    Build the graphics for the requested chromosome.
    Args:
        calls, cytobands, segments: pandas.DataFrame
            Normalized input tables. segments may be None.
        boundary_points: pandas.DataFrame
            Dummy points already restricted to chromosome
        chromosome: str
            "all" for a genome-wide faceted view, otherwise the chromosome to show with its ideogram
        renderer:
            Object with build_main, build_ideogram and align methods. If None, use plotting.MatplotlibRenderer
    Returns:
        view: GenomeView or ChromosomeView
        calls: pandas.DataFrame
            The calls that were plotted (subset to chromosome in single-chromosome mode)
        segments: pandas.DataFrame or None
            The segments that were plotted
    """
    if renderer is None:
        renderer = plotting.MatplotlibRenderer()

    if chromosome == Default.all_chromosomes:
        main = renderer.build_main(calls, boundary_points, segments=segments, chromosome=chromosome,
                                   cn_scale=cn_scale, layers=plot_layer, segment_color=segment_color)
        return GenomeView(main), calls, segments

    ideogram = renderer.build_ideogram(cytobands, chromosome, txt_angle=ideogram_txt_angle,
                                       txt_size=ideogram_txt_size, layers=ideogram_layer)
    calls = genomics_io.subset_chromosome(calls, chromosome)
    if segments is not None:
        segments = genomics_io.subset_chromosome(segments, chromosome)
    main = renderer.build_main(calls, boundary_points, segments=segments, chromosome=chromosome,
                               cn_scale=cn_scale, layers=plot_layer, segment_color=segment_color)
    return ChromosomeView(ideogram, main, renderer.align(ideogram, main)), calls, segments


def select_output(
        data: DataBundle,
        graphic: plotting.Graphic,
        out: Union[str, OutputMode] = Default.out,
        renderer: Optional[Renderer] = None
) -> Union[DataBundle, plotting.Graphic]:
    """
    Return the requested representation of a view
    Args:
        data: DataBundle
            Tables that were plotted
        graphic: plotting.Graphic
            Final graphic (composite or faceted)
        out: str or OutputMode
            "data": return data; "graphic": return graphic undrawn; "rendered": draw graphic, then return it
        renderer:
            Object with a draw method. If None, use plotting.MatplotlibRenderer
    """
    out = OutputMode(out)
    if out == OutputMode.Data:
        return data
    elif out == OutputMode.Graphic:
        return graphic
    if renderer is None:
        renderer = plotting.MatplotlibRenderer()
    renderer.draw(graphic)
    return graphic


def make_view(
        calls: pandas.DataFrame,
        cytobands: Optional[pandas.DataFrame] = None,
        segments: Optional[pandas.DataFrame] = None,
        genome: str = Default.genome,
        chromosome: str = Default.chromosome,
        cn_scale: Union[str, CnScale] = Default.cn_scale,
        ideogram_txt_angle: float = Default.ideogram_txt_angle,
        ideogram_txt_size: float = Default.ideogram_txt_size,
        plot_layer: plotting.Layers = None,
        ideogram_layer: plotting.Layers = None,
        segment_color: Optional[str] = None,
        renderer: Optional[Renderer] = None,
        resolvers: Optional[Sequence[cytobands_module.CytobandResolver]] = None
) -> (View, DataBundle):
    """
    Validate inputs, resolve cytobands, make boundary points and build the view. Arguments are as for cn_view.
    Returns:
        view: GenomeView or ChromosomeView
        data: DataBundle
            Tables that were plotted
    """
    calls, cytobands, segments, cn_scale = genomics_io.normalize_inputs(
        calls, cytobands=cytobands, segments=segments, cn_scale=cn_scale
    )

    cytobands = cytobands_module.resolve_cytobands(genome=genome, cytobands=cytobands, resolvers=resolvers)
    boundary_points = cytobands_module.get_boundary_points(cytobands, chromosome=chromosome)
    unmatched_chromosomes = genomics_io.get_unmatched_chromosomes(calls, cytobands)
    if unmatched_chromosomes:
        logging.warning(
            f"Calls on chromosome(s) {','.join(unmatched_chromosomes)} have no cytoband data, check that calls and "
            f"cytobands name chromosomes the same way (e.g. "
            f"{genomics_io.sort_chromosomes(cytobands[genomics_io.Keys.chrom])[0]})"
        )

    view, calls, segments = build_view(
        calls, cytobands, boundary_points, segments=segments, chromosome=chromosome, cn_scale=cn_scale,
        ideogram_txt_angle=ideogram_txt_angle, ideogram_txt_size=ideogram_txt_size, plot_layer=plot_layer,
        ideogram_layer=ideogram_layer, segment_color=segment_color, renderer=renderer
    )
    data = {Keys.main: calls, Keys.dummy_data: boundary_points, Keys.segments: segments, Keys.cytobands: cytobands}
    return view, data


def cn_view(
        calls: pandas.DataFrame,
        cytobands: Optional[pandas.DataFrame] = None,
        segments: Optional[pandas.DataFrame] = None,
        genome: str = Default.genome,
        chromosome: str = Default.chromosome,
        cn_scale: Union[str, CnScale] = Default.cn_scale,
        ideogram_txt_angle: float = Default.ideogram_txt_angle,
        ideogram_txt_size: float = Default.ideogram_txt_size,
        plot_layer: plotting.Layers = None,
        ideogram_layer: plotting.Layers = None,
        out: Union[str, OutputMode] = Default.out,
        segment_color: Optional[str] = None,
        renderer: Optional[Renderer] = None,
        resolvers: Optional[Sequence[cytobands_module.CytobandResolver]] = None
) -> Union[DataBundle, plotting.Graphic]:
    f"""
    Plot raw copy number calls of a single sample, either for one chromosome with its ideogram above, or for the whole
    genome with one facet per chromosome.
    Args:
        calls: pandas.DataFrame
            Copy number calls with columns "chromosome", "coordinate", "cn", and optionally "p_value". If p_value is
            present, less significant calls are drawn more transparent. Missing values are not allowed in any of
            these columns: a single missing p_value raises SchemaError for the whole table, so drop the column (or
            fill it) rather than leaving gaps. Chromosome names must match the cytobands' naming ("chr1" vs "1"),
            calls on chromosomes without cytobands are logged as a warning.
        cytobands: pandas.DataFrame or None (Default=None)
            Cytogenetic bands with columns "chrom", "chromStart", "chromEnd", "name", "gieStain". Takes precedence
            over genome.
        segments: pandas.DataFrame or None (Default=None)
            Segment calls with columns "chromosome", "start", "end", "segmean", drawn on top of the calls.
        genome: str (Default={Default.genome})
            Genome assembly. Cytobands of {sorted(cytobands_module.Default.preloaded_genomes)} are built in, any other
            assembly is looked up at UCSC.
        chromosome: str (Default={Default.chromosome})
            Chromosome to plot ("chr..."), or "all" for the whole genome
        cn_scale: str or CnScale (Default={Default.cn_scale})
            "relative" (copy neutral == 0) or "absolute" (copy neutral == 2)
        ideogram_txt_angle: float (Default={Default.ideogram_txt_angle})
            Angle of cytogenetic band labels on the ideogram
        ideogram_txt_size: float (Default={Default.ideogram_txt_size})
            Size of cytogenetic band labels on the ideogram
        plot_layer: callable or sequence of callables (Default=None)
            Called with each copy number axes after it is drawn
        ideogram_layer: callable or sequence of callables (Default=None)
            Called with the ideogram axes after it is drawn
        out: str or OutputMode (Default={Default.out})
            "data", "graphic" or "rendered"
        segment_color: str or None (Default=None)
            Colour of segment lines, only used if segments are supplied
        renderer: (Default=None)
            Plotting collaborator. If None, use plotting.MatplotlibRenderer
        resolvers: Sequence of cytoband resolvers or None (Default=None)
            If None, use cytobands.default_resolvers()
    Returns:
        output: Dict[str, pandas.DataFrame] or plotting.Graphic
            If out is "data", the tables to be plotted ("main", "dummyData", "segments", "cytobands"), otherwise the
            graphic.
    """
    out = OutputMode(out)
    if renderer is None:
        renderer = plotting.MatplotlibRenderer()
    view, data = make_view(
        calls, cytobands=cytobands, segments=segments, genome=genome, chromosome=chromosome, cn_scale=cn_scale,
        ideogram_txt_angle=ideogram_txt_angle, ideogram_txt_size=ideogram_txt_size, plot_layer=plot_layer,
        ideogram_layer=ideogram_layer, segment_color=segment_color, renderer=renderer, resolvers=resolvers
    )
    return select_output(data=data, graphic=view.graphic, out=out, renderer=renderer)


def _load_table(data_file: Optional[str]) -> Optional[pandas.DataFrame]:
    return None if data_file is None else genomics_io.tsv_to_pandas(data_file)


def write_data_bundle(output_dir: str, data: DataBundle, suffix: str = Default.data_file_suffix) -> List[str]:
    """ Write each non-empty table of a data bundle to output_dir/<key><suffix>, returning the paths written """
    os.makedirs(output_dir, exist_ok=True)
    written = []
    for key, table in data.items():
        if table is None:
            continue
        data_file = os.path.join(output_dir, f"{key}{suffix}")
        genomics_io.pandas_to_tsv(data_file, table)
        written.append(data_file)
    return written


def __parse_arguments(argv: List[Text]) -> argparse.Namespace:
    # noinspection PyTypeChecker
    parser = argparse.ArgumentParser(
        description="Plot copy number calls of a single sample, for one chromosome with its ideogram or for the "
                    "whole genome",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        prog=argv[0]
    )
    parser.add_argument("--calls", "-c", type=str, required=True,
                        help="Tab-delimited file of copy number calls with columns chromosome, coordinate, cn and "
                             "optionally p_value")
    parser.add_argument("--cytobands", "-y", type=str, required=False,
                        help="Tab-delimited file of cytogenetic bands with columns chrom, chromStart, chromEnd, name, "
                             "gieStain. Overrides --genome")
    parser.add_argument("--segments", "-z", type=str, required=False,
                        help="Tab-delimited file of segment calls with columns chromosome, start, end, segmean")
    parser.add_argument("--genome", "-g", type=str, default=Default.genome,
                        help=f"Genome assembly. Built in: {','.join(sorted(cytobands_module.Default.preloaded_genomes))}"
                             f", others are looked up at UCSC")
    parser.add_argument("--chr", dest="chromosome", type=str, default=Default.chromosome,
                        help=f"Chromosome to plot, or '{Default.all_chromosomes}' for the whole genome")
    parser.add_argument("--cn-scale", type=str, default=Default.cn_scale,
                        choices=[scale.value for scale in CnScale],
                        help="Whether calls are relative (neutral == 0) or absolute (neutral == 2)")
    parser.add_argument("--ideogram-txt-angle", type=float, default=Default.ideogram_txt_angle,
                        help="Angle of cytogenetic band labels")
    parser.add_argument("--ideogram-txt-size", type=float, default=Default.ideogram_txt_size,
                        help="Size of cytogenetic band labels")
    parser.add_argument("--segment-color", type=str, required=False,
                        help="Colour of segment lines")
    parser.add_argument("--output-pdf", "-O", type=str, required=False,
                        help="Save the plot to this pdf. If neither this nor --output-data-dir is given, the plot is "
                             "drawn to the display")
    parser.add_argument("--output-data-dir", type=str, required=False,
                        help="Write the plotted tables (main, dummyData, segments, cytobands) as bgzipped TSVs in "
                             "this directory")
    parsed_arguments = parser.parse_args(argv[1:] if len(argv) > 1 else ["--help"])
    return parsed_arguments


def main(argv: Optional[List[Text]] = None) -> plotting.Graphic:
    arguments = __parse_arguments(sys.argv if argv is None else argv)
    logging.basicConfig(format='%(asctime)s - %(message)s', level=logging.INFO)
    tables = {}
    for table_name in ("calls", "cytobands", "segments"):
        data_file = getattr(arguments, table_name)
        try:
            tables[table_name] = _load_table(data_file)
        except (ValueError, OSError) as error:
            common.add_exception_context(error, f"Loading {table_name} from {data_file}")
            raise
    view, data = make_view(
        genome=arguments.genome, chromosome=arguments.chromosome, cn_scale=arguments.cn_scale,
        ideogram_txt_angle=arguments.ideogram_txt_angle, ideogram_txt_size=arguments.ideogram_txt_size,
        segment_color=arguments.segment_color, **tables
    )
    if arguments.output_data_dir is not None:
        for data_file in write_data_bundle(arguments.output_data_dir, data):
            logging.info(f"Wrote {data_file}")
    graphic = view.graphic
    if arguments.output_pdf is not None:
        plotting.save_figures(arguments.output_pdf, graphic.figure)
        logging.info(f"Saved plot to {arguments.output_pdf}")
    elif arguments.output_data_dir is None:
        # nowhere to write, so draw to the display
        select_output(data, graphic, out=OutputMode.Rendered)
    return graphic


if __name__ == "__main__":
    main()
