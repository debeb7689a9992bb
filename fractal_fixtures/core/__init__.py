"""Core numerics: viewports, sampling, complexity scoring and the synthesis loop."""
