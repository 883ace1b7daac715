"""DESeq2 normalization through rpy2."""

import logging
from typing import Dict

import pandas as pd

try:
    import rpy2.robjects as ro
    from rpy2.robjects import pandas2ri
    from rpy2.robjects.packages import importr
    from rpy2.robjects.conversion import localconverter
    RPY2_AVAILABLE = True
except ImportError:
    RPY2_AVAILABLE = False
    logging.warning("rpy2 not available. DESeq2 normalization will not work.")


logger = logging.getLogger(__name__)


class DESeq2Error(Exception):
    """Exception for DESeq2-related errors."""
    pass


class DESeq2Wrapper:
    """Wrapper for DESeq2 size-factor normalization and variance stabilization."""

    def __init__(self):
        """Initialize DESeq2 wrapper and check R environment."""
        if not RPY2_AVAILABLE:
            raise DESeq2Error("rpy2 is not installed. Please install it with: pip install rpy2")

        self._check_r_packages()
        self._load_r_packages()

    def _check_r_packages(self):
        """Check if required R packages are installed."""
        utils = importr('utils')
        base = importr('base')

        installed = base.rownames(utils.installed_packages())

        if 'DESeq2' not in installed:
            raise DESeq2Error(
                "Required R package not found: DESeq2\n"
                "Please install it in R using:\n"
                "  if (!require('BiocManager', quietly = TRUE))\n"
                "      install.packages('BiocManager')\n"
                "  BiocManager::install('DESeq2')"
            )

    def _load_r_packages(self):
        """Load required R packages."""
        try:
            self.deseq2 = importr('DESeq2')
            self.base = importr('base')
            logger.info("Successfully loaded DESeq2")
        except Exception as e:
            raise DESeq2Error(f"Failed to load R packages: {str(e)}")

    def _to_r(self, df: pd.DataFrame):
        with localconverter(ro.default_converter + pandas2ri.converter):
            return ro.conversion.py2rpy(df)

    def _matrix_to_pandas(self, r_matrix) -> pd.DataFrame:
        """Convert an R matrix with dimnames into a labelled DataFrame."""
        with localconverter(ro.default_converter + pandas2ri.converter):
            df = ro.conversion.rpy2py(self.base.as_data_frame(r_matrix))
            df.index = list(self.base.rownames(r_matrix))
            df.columns = list(self.base.colnames(r_matrix))
        return df

    def create_deseq_dataset(
        self,
        counts: pd.DataFrame,
        sample_info: pd.DataFrame,
        design: str = "~1"
    ):
        """
        Create DESeqDataSet object.

        Args:
            counts: Count matrix (genes x samples), integer counts
            sample_info: Sample information indexed by sample ID
            design: Design formula; ``~1`` when no groups are modelled

        Returns:
            DESeqDataSet R object
        """
        logger.info(f"Creating DESeqDataSet with design: {design}")

        missing = [s for s in counts.columns if s not in sample_info.index]
        if missing:
            raise DESeq2Error(f"Samples missing from sample information: {', '.join(map(str, missing))}")

        # Ensure sample order matches
        sample_info = sample_info.loc[counts.columns]

        r_counts = self.base.as_matrix(self._to_r(counts.round().astype(int)))
        r_counts.rownames = ro.StrVector([str(g) for g in counts.index])
        r_counts.colnames = ro.StrVector([str(s) for s in counts.columns])

        try:
            dds = self.deseq2.DESeqDataSetFromMatrix(
                countData=r_counts,
                colData=self._to_r(sample_info),
                design=ro.Formula(design)
            )
            logger.info(f"Created DESeqDataSet with {counts.shape[0]} genes and {counts.shape[1]} samples")
            return dds
        except Exception as e:
            raise DESeq2Error(f"Failed to create DESeqDataSet: {str(e)}")

    def estimate_size_factors(self, dds):
        """Estimate per-sample size factors."""
        try:
            return self.deseq2.estimateSizeFactors(dds)
        except Exception as e:
            raise DESeq2Error(f"Failed to estimate size factors: {str(e)}")

    def get_size_factors(self, dds) -> pd.Series:
        """Return size factors as a Series indexed by sample."""
        factors = self.deseq2.sizeFactors(dds)
        return pd.Series(list(factors), index=list(self.base.names(factors)), name="size_factor")

    def get_normalized_counts(self, dds) -> pd.DataFrame:
        """
        Get normalized counts from DESeqDataSet.

        Args:
            dds: DESeqDataSet object with size factors

        Returns:
            DataFrame with normalized counts
        """
        try:
            return self._matrix_to_pandas(self.deseq2.counts(dds, normalized=True))
        except Exception as e:
            raise DESeq2Error(f"Failed to get normalized counts: {str(e)}")

    def get_vst_counts(self, dds, blind: bool = True) -> pd.DataFrame:
        """
        Get variance-stabilized transformation of counts.

        Args:
            dds: DESeqDataSet object
            blind: Ignore the design when estimating dispersions

        Returns:
            DataFrame with VST-transformed counts
        """
        try:
            vst = self.deseq2.vst(dds, blind=blind)
            return self._matrix_to_pandas(self.deseq2.assay(vst))
        except Exception as e:
            raise DESeq2Error(f"Failed to get VST counts: {str(e)}")


def run_normalization(
    counts: pd.DataFrame,
    sample_info: pd.DataFrame,
    design: str = "~1",
    blind: bool = True
) -> Dict:
    """
    Normalize a count matrix with DESeq2.

    Args:
        counts: Count matrix (genes x samples)
        sample_info: Sample information indexed by sample ID
        design: Design formula
        blind: Whether the VST ignores the design

    Returns:
        Dictionary containing:
            - normalized_counts: size-factor normalized counts
            - vst_counts: VST-transformed counts
            - size_factors: per-sample size factors
    """
    wrapper = DESeq2Wrapper()

    dds = wrapper.create_deseq_dataset(counts, sample_info, design)
    dds = wrapper.estimate_size_factors(dds)

    return {
        'normalized_counts': wrapper.get_normalized_counts(dds),
        'vst_counts': wrapper.get_vst_counts(dds, blind=blind),
        'size_factors': wrapper.get_size_factors(dds)
    }
