"""Analysis core: parser, context engine, analyzers, reconciler, scoring, pipeline."""
