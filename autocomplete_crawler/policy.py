class ExpansionPolicy:
    """
    Decide whether a prefix needs child prefixes.

    A prefix is expanded when it returned anything and is still shorter than
    `depth_threshold`, or when its result hit the endpoint's cap and it is no
    longer than `shallow_threshold`: a capped result may hide further matches
    that only a longer prefix reveals.

    Non-empty results below the cap at depth >= depth_threshold are never
    expanded. That relies on the measured cap being exact.
    """

    def __init__(self, alphabet, depth_threshold=3, shallow_threshold=2, result_cap=None):
        self.alphabet = alphabet
        self.depth_threshold = depth_threshold
        self.shallow_threshold = shallow_threshold
        self.result_cap = result_cap

    @classmethod
    def from_config(cls, config, result_cap=None):
        return cls(
            alphabet=config.alphabet,
            depth_threshold=config.depth_threshold,
            shallow_threshold=config.shallow_threshold,
            result_cap=result_cap if result_cap is not None else config.result_cap,
        )

    def should_expand(self, prefix, names):
        if names and len(prefix) < self.depth_threshold:
            return True
        # Unknown cap: the saturation rule cannot fire
        if self.result_cap is not None and len(names) >= self.result_cap and len(prefix) <= self.shallow_threshold:
            return True
        return False

    def children(self, prefix):
        return [prefix + c for c in self.alphabet]

    def expand(self, prefix, names):
        if self.should_expand(prefix, names):
            return self.children(prefix)
        return []
