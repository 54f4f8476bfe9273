"""Container image build-and-release pipeline.

Resolves image names and tags across registries, materializes registry
credentials per run, builds with ``docker`` or the kaniko executor, pushes,
and links the released image back to its commit.
"""

__version__ = "0.4.0"
