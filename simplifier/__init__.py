"""jssimplify: finds and applies behavior-preserving simplifications in JavaScript/TypeScript."""

__version__ = "0.1.0"
