"""
Analytics Package
=================
Pure computation layers of the pattern engine.  Every function here reads
an AggregatedSnapshot (or the output of an earlier layer) and returns
frozen records; nothing touches the database or the network.

Modules:
  aggregator   - validation, trade/emotion join, level/week/timing buckets
  correlation  - Pearson r between emotion level and outcome, per-level stats
  significance - two-tailed t-test gate on r
  trends       - weekly win-rate / emotion trend points
  optimizer    - optimal/caution/avoid ranges, best timing, composite score
  insights     - rule-based insight generation and ordering
"""
