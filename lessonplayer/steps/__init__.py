"""Step renderers.

Each built-in step type lives in its own module exporting a `StepDescriptor`.
Nothing here imports the renderer modules; the registry does that on demand.
"""
