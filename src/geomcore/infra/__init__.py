from .vm_power import AzureVMController, PowerState, VMPowerController, power_state_from_statuses

__all__ = ["AzureVMController", "PowerState", "VMPowerController", "power_state_from_statuses"]
