"""UE configuration presets, data-plane mode and user-plane packet observation."""