from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from journal_store import Post


@dataclass
class Insights:
    average: float
    most_positive: Optional[Post]
    most_negative: Optional[Post]
    sorted_by_score: List[Post] = field(default_factory=list)
    sorted_by_date: List[Post] = field(default_factory=list)
    chart: Dict[str, list] = field(default_factory=lambda: {"x": [], "y": []})

    @property
    def has_data(self) -> bool:
        return bool(self.sorted_by_score)

    def to_dict(self):
        def _post(p):
            if p is None:
                return None
            return {"id": p.id, "body": p.body, "date": p.date.isoformat() if p.date else None, "score": p.score}

        return {
            "postCount": len(self.sorted_by_score),
            "average": self.average,
            "mostPositive": _post(self.most_positive),
            "mostNegative": _post(self.most_negative),
            "data": self.chart,
        }


def date_label(value) -> str:
    """Format a date the way en-US browsers do: 1/5/2021."""
    if value is None:
        return ""
    return f"{value.month}/{value.day}/{value.year}"


def summarize(posts: Sequence[Post]) -> Insights:
    """
    Aggregate a user's posts for the insights page.

    Both sorts are stable, so equal scores (or dates) keep the order the posts
    were written in. With no posts the average is 0.0 and both extremes are None.
    """
    posts = list(posts)
    if not posts:
        return Insights(average=0.0, most_positive=None, most_negative=None)

    sorted_by_score = sorted(posts, key=lambda p: p.score, reverse=True)
    average = sum(p.score for p in posts) / len(posts)

    # Undated posts sort first
    sorted_by_date = sorted(posts, key=lambda p: (p.date is not None, p.date or 0))
    chart = {
        "x": [date_label(p.date) for p in sorted_by_date],
        "y": [p.score for p in sorted_by_date],
    }

    return Insights(
        average=average,
        most_positive=sorted_by_score[0],
        most_negative=sorted_by_score[-1],
        sorted_by_score=sorted_by_score,
        sorted_by_date=sorted_by_date,
        chart=chart,
    )
