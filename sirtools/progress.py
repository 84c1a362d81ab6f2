from typing import Callable, Optional

from tqdm import tqdm

# A progress sink is called as sink(k, maxiter, relaxpar, rnorm) after every
# iteration. It may provide a close() method, called once after the loop.
ProgressSink = Callable[[int, int, float, float], None]


class PrintProgress:
    """
    Print iteration info: every iteration if verbose == 1, otherwise every
    verbose'th iteration, and the first and last iteration.
    """

    def __init__(self, verbose: int):
        self.verbose = verbose
        self.last = None

    @staticmethod
    def _print(k, maxiter, relaxpar, rnorm):
        print(
            f"Iteration {k:>6d} of {maxiter}: "
            f"relaxpar = {relaxpar:.4e}, ||r|| = {rnorm:.4e}"
        )

    def __call__(self, k: int, maxiter: int, relaxpar: float, rnorm: float):
        if k == 1 or k == maxiter or k % self.verbose == 0:
            self._print(k, maxiter, relaxpar, rnorm)
            self.last = None
        else:
            self.last = (k, maxiter, relaxpar, rnorm)

    def close(self):
        # Stopped early: print the final iteration.
        if self.last is not None:
            self._print(*self.last)
            self.last = None


class WaitbarProgress:
    def __init__(self, maxiter: int, desc: str = "SIRT iterations"):
        self.bar = tqdm(total=maxiter, desc=desc)

    def __call__(self, k: int, maxiter: int, relaxpar: float, rnorm: float):
        self.bar.update(k - self.bar.n)
        self.bar.set_postfix(residual=f"{rnorm:.3e}", refresh=False)

    def close(self):
        self.bar.close()


class CompositeProgress:
    def __init__(self, *sinks: ProgressSink):
        self.sinks = sinks

    def __call__(self, k: int, maxiter: int, relaxpar: float, rnorm: float):
        for sink in self.sinks:
            sink(k, maxiter, relaxpar, rnorm)

    def close(self):
        for sink in self.sinks:
            close = getattr(sink, "close", None)
            if close is not None:
                close()


def make_progress(verbose: int, waitbar: bool, maxiter: int) -> Optional[ProgressSink]:
    sinks = []
    if verbose > 0:
        sinks.append(PrintProgress(verbose))
    if waitbar:
        sinks.append(WaitbarProgress(maxiter))
    if not sinks:
        return None
    if len(sinks) == 1:
        return sinks[0]
    return CompositeProgress(*sinks)
