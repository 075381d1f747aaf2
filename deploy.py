"""
Fund Deployment Wrapper
Runs `main.py deploy`, forwarding any extra arguments
"""

import subprocess
import sys

if __name__ == "__main__":
    print("=" * 70)
    print("Mock Fund Deployment")
    print("=" * 70)
    print()

    # deploy.py --network sepolia --fresh -> main.py --network sepolia deploy --fresh
    args = sys.argv[1:]
    global_args = []
    if "--network" in args:
        i = args.index("--network")
        global_args = args[i:i + 2]
        args = args[:i] + args[i + 2:]

    result = subprocess.run(
        [sys.executable, "main.py", *global_args, "deploy", *args],
        cwd="."
    )

    sys.exit(result.returncode)
