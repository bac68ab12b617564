"""Entry point wrapper for ``python -m harmony_fitness``.

Execution is forwarded to :func:`harmony_fitness.main` so the behaviour is
identical to the installed ``harmony-fitness`` console script.

Example
-------
::

    python -m harmony_fitness melody.mid --range 48-60 --seed 1
"""

from . import main

if __name__ == "__main__":
    main()
