"""
Default pane layout seeded into an empty store.
"""
from __future__ import annotations

from news_terminal.models.news import Market, Pane, PaneRules, Region, Theme

DEFAULT_PANES: tuple[Pane, ...] = (
    Pane(
        id="americas",
        title="Americas",
        rules=PaneRules(
            regions=(Region.AMERICAS,),
            keywords=("US", "Fed", "Wall Street", "Canada", "Brazil"),
        ),
    ),
    Pane(
        id="europe",
        title="Europe",
        rules=PaneRules(
            regions=(Region.EUROPE,),
            keywords=("ECB", "Europe", "UK", "Germany", "France"),
        ),
    ),
    Pane(
        id="asia_pacific",
        title="Asia Pacific",
        rules=PaneRules(
            regions=(Region.ASIA_PACIFIC,),
            keywords=("China", "Japan", "India", "BOJ", "Australia"),
        ),
    ),
    Pane(
        id="macro_policy",
        title="Macro & Policy",
        rules=PaneRules(
            themes=(Theme.MONETARY_POLICY, Theme.FISCAL_POLICY, Theme.ECONOMIC_DATA),
            keywords=("rate", "inflation", "GDP", "central bank", "budget"),
        ),
    ),
    Pane(
        id="corporate",
        title="Corporate",
        rules=PaneRules(
            markets=(Market.EQUITIES,),
            themes=(Theme.EARNINGS, Theme.M_AND_A, Theme.CORPORATE_ACTION),
            keywords=("earnings", "merger", "acquisition", "IPO", "dividend"),
        ),
    ),
    Pane(
        id="risk_events",
        title="Risk Events",
        rules=PaneRules(
            themes=(Theme.RISK_EVENT, Theme.GEOPOLITICS),
            keywords=("sanctions", "war", "crisis", "crash", "default"),
        ),
    ),
)
