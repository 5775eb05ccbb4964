VERSION = "1.0.0"
PROTOCHAIN = "protochain " + VERSION


if __name__ == "__main__":  # pragma: no cover
    print(VERSION)
