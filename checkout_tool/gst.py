"""GST rate options and CGST/SGST breakdowns for order summaries."""
from dataclasses import dataclass

DEFAULT_GST_RATE = 18.0

# Supported rates (percent) and their even central/state split
GST_RATE_OPTIONS: dict[float, tuple[float, float]] = {
    0.0: (0.0, 0.0),
    5.0: (2.5, 2.5),
    12.0: (6.0, 6.0),
    18.0: (9.0, 9.0),
    28.0: (14.0, 14.0),
}


@dataclass(frozen=True)
class GSTBreakdown:
    """Rates as fractions, e.g. 0.18 total, 0.09 CGST, 0.09 SGST."""
    total_rate: float
    cgst_rate: float
    sgst_rate: float

    @property
    def label(self) -> str:
        return f"{self.total_rate * 100:g}%"


@dataclass(frozen=True)
class GSTAmounts:
    taxable_amount: float
    cgst: float
    sgst: float
    total_gst: float


def gst_breakdown(rate: float | None, default: float = DEFAULT_GST_RATE) -> GSTBreakdown:
    """Look up a rate option. Unknown or missing rates fall back to the default."""
    key = float(rate) if rate is not None else float(default)
    if key not in GST_RATE_OPTIONS:
        key = float(default)
    cgst, sgst = GST_RATE_OPTIONS[key]
    return GSTBreakdown(total_rate=key / 100, cgst_rate=cgst / 100, sgst_rate=sgst / 100)


def calculate_gst(amount: float, rate: float | None = None, default: float = DEFAULT_GST_RATE) -> GSTAmounts:
    """Split a GST-inclusive amount into taxable value and CGST/SGST."""
    breakdown = gst_breakdown(rate, default)
    taxable = amount / (1 + breakdown.total_rate)
    cgst = taxable * breakdown.cgst_rate
    sgst = taxable * breakdown.sgst_rate
    return GSTAmounts(
        taxable_amount=round(taxable, 2),
        cgst=round(cgst, 2),
        sgst=round(sgst, 2),
        total_gst=round(cgst + sgst, 2),
    )
