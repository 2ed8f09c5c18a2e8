"""
NGS Vault - Sequencing Run Catalogue

Catalogues sequencer run folders and archives into a relational store and
lets users locate, reconcile and export the FASTQ files of single samples.
"""

__version__ = "0.1.0"
__author__ = "NGS Vault Development Team"
