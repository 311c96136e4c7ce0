"""Board import pipeline: parse, classify, enrich, stage."""
