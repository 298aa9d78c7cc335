"""
Test suite for hal_nn.

This module provides a comprehensive test suite for all components
of the hal_nn implementation.
"""

import sys
import os

# Add repository root to path
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(parent_dir)

# Add current directory to path for test imports
current_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.append(current_dir)

from test_complex_ops import run_complex_ops_tests
from test_transforms import run_transform_tests
from test_activations import run_activation_tests
from test_losses import run_loss_tests
from test_layers import run_layer_tests
from test_unitary import run_unitary_tests
from test_model import run_model_tests


def run_all_tests():
    """
    Run all test suites for hal_nn.

    This function runs all available tests:
    1. Complex packing tests
    2. Unitary transform tests
    3. Activation tests
    4. Loss tests
    5. Dense/RNN layer tests
    6. Unitary layer tests
    7. Model, optimizer and data utility tests
    """
    print("="*80)
    print("HAL_NN COMPREHENSIVE TEST SUITE")
    print("="*80)
    print()

    test_suites = [
        ("Complex Packing Tests", run_complex_ops_tests),
        ("Unitary Transform Tests", run_transform_tests),
        ("Activation Tests", run_activation_tests),
        ("Loss Tests", run_loss_tests),
        ("Layer Tests", run_layer_tests),
        ("Unitary Layer Tests", run_unitary_tests),
        ("Model Tests", run_model_tests),
    ]

    passed_suites = 0
    total_suites = len(test_suites)

    for suite_name, test_function in test_suites:
        print(f"Running {suite_name}...")
        print("-" * 60)

        try:
            test_function()
            passed_suites += 1
            print(f"✓ {suite_name} PASSED")
        except Exception as e:
            print(f"✗ {suite_name} FAILED: {e}")
            print(f"Error details: {type(e).__name__}: {e}")

        print()

    print("="*80)
    print(f"TEST SUITE SUMMARY: {passed_suites}/{total_suites} test suites passed")

    if passed_suites == total_suites:
        print("🎉 ALL TESTS PASSED!")
    else:
        print(f"⚠️  {total_suites - passed_suites} test suite(s) failed. Please check the implementation.")

    print("="*80)

    return passed_suites == total_suites


if __name__ == "__main__":
    success = run_all_tests()
    sys.exit(0 if success else 1)
