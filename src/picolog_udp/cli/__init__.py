"""
Command-line interface for picolog_udp.

Examples
--------
Find PT-104 loggers on the network:
```bash
$ picolog-udp find --variant pt104
```

Stream 20 samples from a CM3 at a known address:
```bash
$ picolog-udp stream --variant cm3 --address 192.168.1.50 --port 5000 -n 20
```

CLI Tree
--------

```
$ picolog-udp --tree
cli
└── config
    └── list
    └── save
    └── show
└── find
└── stream
```
"""

from .base import cli, tree_option

__all__ = ["cli", "tree_option"]
