"""rke2lab - bootstrap a local RKE2 cluster on Multipass VMs."""

__version__ = "0.1.0"
