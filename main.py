"""Entry point launcher - runs pwshstep.cli as a module"""
import runpy

if __name__ == "__main__":
    runpy.run_module("pwshstep.cli", run_name="__main__")
