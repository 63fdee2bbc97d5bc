"""
Command-line interface for hallscope.

Examples
--------
Starting the GUI against a freshly spawned mock host:
```bash
$ hallscope gui --mock
```

Running the mock host in the foreground (e.g. for a GUI on another machine):
```bash
$ hallscope mock-host --host-address 0.0.0.0
```

CLI Tree
--------

```
$ hallscope --tree
cli
└── gui
└── mock-host
└── ports
```

See Also
--------
hallscope.gui : Graphical user interface
hallscope.host.mock_host : the simulated rig
"""

from .base import cli, tree_option
