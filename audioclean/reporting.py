"""
Reporting and Visualization Module
==================================

Metric rendering and batch reports.

Features:
- Human-readable metric lines for a single clip
- Quality score distribution and component breakdown plots
- Text summary of a batch run
"""

import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns
from pathlib import Path
from typing import List, Optional
import logging
from datetime import datetime

from .metrics import QualityMetrics

logger = logging.getLogger(__name__)

# Configure matplotlib for report output
plt.rcParams.update({
    'figure.figsize': (12, 8),
    'figure.dpi': 100,
    'savefig.dpi': 150,
    'font.size': 12,
    'axes.labelsize': 14,
    'axes.titlesize': 16,
    'axes.grid': True,
    'grid.alpha': 0.3
})

SCORE_COMPONENTS = ["frequency_score", "bitrate_score", "channel_score"]


def format_metrics(metrics: QualityMetrics) -> List[str]:
    """
    Render metrics as display lines.

    Duration is shown with 2 decimals; the quality score as an integer.
    """
    return [
        f"Bitrate: {metrics.bitrate} kbps",
        f"Sample Rate: {metrics.sample_rate} Hz",
        f"Channels: {metrics.channels}",
        f"Duration: {metrics.duration:.2f} seconds",
        f"Quality Score: {metrics.quality_score:.0f}/100",
    ]


class QualityReporter:
    """
    Generate quality reports and visualizations for a batch run.
    """

    def __init__(self, results_df: pd.DataFrame, output_dir: str = "reports"):
        """
        Initialize reporter.

        Args:
            results_df: DataFrame with pipeline results
            output_dir: Output directory for reports
        """
        self.df = results_df
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        sns.set_style("whitegrid")

    @property
    def successful(self) -> pd.DataFrame:
        if "success" not in self.df.columns:
            return self.df.iloc[0:0]
        return self.df[self.df["success"].astype(bool)]

    # =========================================================================
    # PLOTS
    # =========================================================================

    def plot_score_distribution(self, save: bool = True) -> Optional[plt.Figure]:
        """
        Histogram of quality scores.
        """
        df = self.successful
        if "quality_score" not in df.columns or df.empty:
            logger.warning("No quality scores to plot")
            return None

        fig, ax = plt.subplots(figsize=(10, 6))
        sns.histplot(df["quality_score"], bins=20, binrange=(0, 100), ax=ax, color="#4a90e2")

        mean = df["quality_score"].mean()
        ax.axvline(mean, color="#2c5282", linestyle="--", label=f"Mean: {mean:.1f}")
        ax.set_title("Quality Score Distribution", fontsize=16, pad=20)
        ax.set_xlabel("Quality Score (0-100)")
        ax.set_ylabel("Files")
        ax.legend()

        plt.tight_layout()

        if save:
            save_path = self.output_dir / "quality_score_distribution.png"
            plt.savefig(save_path, bbox_inches='tight')
            logger.info(f"Saved: {save_path}")

        return fig

    def plot_score_components(self, save: bool = True) -> Optional[plt.Figure]:
        """
        Stacked bars of the three sub-scores per file.
        """
        df = self.successful
        if df.empty or not all(c in df.columns for c in SCORE_COMPONENTS):
            logger.warning("Score components not found for breakdown plot")
            return None

        components = df.set_index("filename")[SCORE_COMPONENTS]

        fig, ax = plt.subplots(figsize=(max(8, 0.5 * len(components) + 4), 6))
        components.plot(kind="bar", stacked=True, ax=ax,
                        color=sns.color_palette("husl", len(SCORE_COMPONENTS)))

        ax.set_title("Quality Score Components", fontsize=16, pad=20)
        ax.set_xlabel("File")
        ax.set_ylabel("Points")
        ax.set_ylim(0, 100)
        ax.legend(["Frequency (max 50)", "Bitrate (max 30)", "Channels (max 20)"])
        plt.xticks(rotation=45, ha="right")

        plt.tight_layout()

        if save:
            save_path = self.output_dir / "quality_score_components.png"
            plt.savefig(save_path, bbox_inches='tight')
            logger.info(f"Saved: {save_path}")

        return fig

    def generate_all_plots(self):
        """Generate all available plots."""
        for plot in (self.plot_score_distribution, self.plot_score_components):
            fig = plot(save=True)
            if fig is not None:
                plt.close(fig)

    # =========================================================================
    # SUMMARY
    # =========================================================================

    def generate_summary_report(self) -> str:
        """
        Write a plain-text summary and return its path.
        """
        df = self.df
        ok = self.successful
        total = len(df)

        lines = [
            "=" * 60,
            "AUDIO QUALITY SUMMARY",
            "=" * 60,
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "",
            f"Total files: {total}",
            f"Successful: {len(ok)}",
            f"Failed: {total - len(ok)}",
        ]

        if not ok.empty and "quality_score" in ok.columns:
            scores = ok["quality_score"]
            lines += [
                "",
                "Quality score:",
                f"  Mean:   {scores.mean():.1f}",
                f"  Median: {scores.median():.1f}",
                f"  Min:    {scores.min():.0f}",
                f"  Max:    {scores.max():.0f}",
            ]

        if not ok.empty and "duration_sec" in ok.columns:
            lines.append(f"\nTotal duration: {ok['duration_sec'].sum():.2f} seconds")

        if "error_kind" in df.columns:
            kinds = df["error_kind"].dropna().value_counts()
            if len(kinds) > 0:
                lines.append("\nFailures:")
                for kind, count in kinds.items():
                    lines.append(f"  {kind}: {count}")

        if not ok.empty and "quality_score" in ok.columns:
            worst = ok.nsmallest(min(5, len(ok)), "quality_score")
            lines.append("\nLowest scores:")
            for _, row in worst.iterrows():
                lines.append(f"  {row['filename']}: {row['quality_score']:.0f}")

        text = "\n".join(lines) + "\n"
        report_path = self.output_dir / "summary.txt"
        report_path.write_text(text, encoding="utf-8")
        logger.info(f"Summary saved to {report_path}")

        return str(report_path)

    def generate_full_report(self):
        """
        Generate complete report package.
        """
        logger.info("Generating full report package...")

        self.generate_all_plots()
        self.generate_summary_report()

        # Export filtered data
        self.successful.to_csv(self.output_dir / "successful_results.csv", index=False)

        logger.info(f"Full report package saved to {self.output_dir}")


def generate_report(results_csv: str, output_dir: str = "reports"):
    """
    Convenience function to generate report from CSV.

    Args:
        results_csv: Path to results CSV file
        output_dir: Output directory for reports
    """
    df = pd.read_csv(results_csv)
    reporter = QualityReporter(df, output_dir)
    reporter.generate_full_report()


if __name__ == "__main__":
    import sys

    if len(sys.argv) < 2:
        print("Usage: python -m audioclean.reporting <results.csv> [output_dir]")
        sys.exit(1)

    results_csv = sys.argv[1]
    output_dir = sys.argv[2] if len(sys.argv) > 2 else "reports"

    generate_report(results_csv, output_dir)
